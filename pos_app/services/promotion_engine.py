"""
Promotion engine - server-side evaluation of cart promotions.

Rules:
 - 2x1: for each pair of units of a product bound to an active 2x1
   promotion, one unit is free.
 - Custom discount (operator-entered, up to 10%, one decimal) is available
   when the gross subtotal is at least 10 000.
 - Promotions never stack: a requested custom discount replaces the 2x1.
 - Tax (IVA 13%) is always computed on the gross subtotal.

The engine is a pure function of the cart, the catalog it is handed and the
requested percentage. Client-computed totals are never an input.
"""
import enum
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Union

from pos_app.models import PromotionType
from pos_app.services.promotion_catalog import ActivePromotion, PromotionCatalog
from pos_app.utils.formatters import money_crc, percent_cr

logger = logging.getLogger(__name__)

TAX_RATE = Decimal('0.13')
CUSTOM_DISCOUNT_MIN_SUBTOTAL = Decimal('10000')
CUSTOM_DISCOUNT_MAX_PERCENT = Decimal('10')
DEFAULT_TWO_FOR_ONE_MIN_QUANTITY = 2
DEFAULT_TWO_FOR_ONE_LABEL = '2x1'

ZERO = Decimal('0')

Number = Union[int, float, Decimal]


class ActivePromotionKind(str, enum.Enum):
    """Which promotion ended up active for the cart."""
    TWO_FOR_ONE = 'two_for_one'
    CUSTOM = 'custom'
    NONE = 'none'


def round_money(value: Decimal) -> Decimal:
    """Round to whole currency units, half up."""
    return value.quantize(Decimal('1'), rounding=ROUND_HALF_UP)


def _to_decimal(value: Number) -> Decimal:
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return ZERO
    # NaN and infinities never compare sanely against money
    return value if value.is_finite() else ZERO


def json_number(value: Decimal) -> Union[int, float]:
    """JSON-friendly number: int when integral."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class CartLine:
    """A cart line as requested by the caller."""
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self):
        if not isinstance(self.unit_price, Decimal) or not self.unit_price.is_finite():
            object.__setattr__(self, 'unit_price', _to_decimal(self.unit_price))

    @property
    def line_subtotal(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class EvaluatedLine:
    """Cart line with the discount the engine decided for it."""
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    line_discount: Decimal = ZERO
    applied_promotion_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit_price': json_number(self.unit_price),
            'line_subtotal': json_number(self.line_subtotal),
            'line_discount': json_number(self.line_discount),
            'applied_promotion_label': self.applied_promotion_label,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """The single authoritative outcome of evaluating a cart."""
    lines: List[EvaluatedLine] = field(default_factory=list)
    subtotal: Decimal = ZERO
    promotion_discount: Decimal = ZERO
    custom_discount: Decimal = ZERO
    total_discount: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    active_promotion: ActivePromotionKind = ActivePromotionKind.NONE
    message: Optional[str] = None
    custom_discount_allowed: bool = False
    effective_custom_percent: Decimal = ZERO

    @classmethod
    def empty(cls) -> 'EvaluationResult':
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lines': [line.to_dict() for line in self.lines],
            'subtotal': json_number(self.subtotal),
            'promotion_discount': json_number(self.promotion_discount),
            'custom_discount': json_number(self.custom_discount),
            'total_discount': json_number(self.total_discount),
            'tax': json_number(self.tax),
            'total': json_number(self.total),
            'active_promotion': self.active_promotion.value,
            'message': self.message,
            'custom_discount_allowed': self.custom_discount_allowed,
            'effective_custom_percent': float(self.effective_custom_percent),
        }


def find_two_for_one(promotions: Iterable[ActivePromotion], quantity: int) -> Optional[ActivePromotion]:
    """First 2x1 promotion (catalog order) whose minimum quantity is met."""
    for promotion in promotions:
        if promotion.kind != PromotionType.TWO_FOR_ONE.value or not promotion.is_active:
            continue
        min_quantity = promotion.min_quantity or DEFAULT_TWO_FOR_ONE_MIN_QUANTITY
        if quantity >= min_quantity:
            return promotion
    return None


def effective_custom_percent(requested: Number) -> Decimal:
    """Clamp a requested percentage to [0, 10] and round to one decimal."""
    clamped = min(max(_to_decimal(requested), ZERO), CUSTOM_DISCOUNT_MAX_PERCENT)
    return clamped.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)


def _build_message(active: ActivePromotionKind, labels: List[str], saved: Decimal,
                   percent: Decimal) -> Optional[str]:
    if active == ActivePromotionKind.CUSTOM:
        return f"Descuento del {percent_cr(percent)} aplicado - ahorrás {money_crc(saved)}"
    if active == ActivePromotionKind.TWO_FOR_ONE:
        return f"Promoción {', '.join(labels)} aplicada - ahorrás {money_crc(saved)}"
    return None


def evaluate_promotions(lines: List[CartLine], catalog: PromotionCatalog,
                        custom_discount_percent: Number = 0) -> EvaluationResult:
    """
    Evaluate all promotions for the given cart.

    Args:
        lines: Cart lines (product_id, quantity, unit_price).
        catalog: Source of active promotions per product. Lookup errors propagate.
        custom_discount_percent: Operator-requested percentage; 0 means no request.

    Returns:
        EvaluationResult with per-line discounts and totals.
    """
    if not lines:
        return EvaluationResult.empty()

    requested_percent = _to_decimal(custom_discount_percent)

    # 1. Batched catalog lookup for every product in the cart
    product_ids = list(dict.fromkeys(line.product_id for line in lines))
    promotions_by_product = catalog.get_active_promotions_for_products(product_ids)

    # 2. 2x1 pass, line by line
    promotion_discount = ZERO
    has_two_for_one = False
    labels: List[str] = []
    evaluated: List[EvaluatedLine] = []

    for line in lines:
        promo = find_two_for_one(promotions_by_product.get(line.product_id, []), line.quantity)
        line_discount = ZERO
        label = None

        if promo:
            has_two_for_one = True
            free_units = line.quantity // 2
            line_discount = free_units * line.unit_price
            label = promo.name or DEFAULT_TWO_FOR_ONE_LABEL
            if label not in labels:
                labels.append(label)

        promotion_discount += line_discount
        evaluated.append(EvaluatedLine(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_subtotal=line.line_subtotal,
            line_discount=line_discount,
            applied_promotion_label=label,
        ))

    raw_subtotal = sum((line.line_subtotal for line in evaluated), ZERO)

    # 3. Eligibility does not depend on whether a 2x1 matched
    custom_allowed = raw_subtotal >= CUSTOM_DISCOUNT_MIN_SUBTOTAL

    # 4. Exclusivity: an explicit custom discount overrides the 2x1
    percent = ZERO
    custom_discount = ZERO
    if requested_percent > 0 and custom_allowed:
        evaluated = [replace(line, line_discount=ZERO, applied_promotion_label=None) for line in evaluated]
        promotion_discount = ZERO
        percent = effective_custom_percent(requested_percent)
        custom_discount = round_money(raw_subtotal * percent / 100)
        active = ActivePromotionKind.CUSTOM
    elif has_two_for_one:
        active = ActivePromotionKind.TWO_FOR_ONE
    else:
        active = ActivePromotionKind.NONE

    # 5. Totals; tax always on the gross subtotal
    total_discount = promotion_discount + custom_discount
    tax = round_money(raw_subtotal * TAX_RATE)
    total = max(ZERO, raw_subtotal + tax - total_discount)

    saved = custom_discount if active == ActivePromotionKind.CUSTOM else promotion_discount
    result = EvaluationResult(
        lines=evaluated,
        subtotal=raw_subtotal,
        promotion_discount=promotion_discount,
        custom_discount=custom_discount,
        total_discount=total_discount,
        tax=tax,
        total=total,
        active_promotion=active,
        message=_build_message(active, labels, saved, percent),
        custom_discount_allowed=custom_allowed,
        effective_custom_percent=percent,
    )

    logger.debug(
        f"[PROMO] Evaluated {len(lines)} lines: subtotal={raw_subtotal} "
        f"active={active.value} discount={total_discount} total={total}"
    )
    return result
