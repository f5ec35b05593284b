"""
Parsing and validation of cart payloads coming from the POS screen.

Only line items and payment details are read. Money fields a client may send
along (subtotal, tax, discount, total, change_amount) are never parsed:
every amount is recomputed by the promotion engine.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pos_app.exceptions import ValidationError
from pos_app.models import PaymentMethod
from pos_app.services.promotion_engine import CartLine

MAX_CUSTOMER_NAME_LENGTH = 150
MAX_IDEMPOTENCY_KEY_LENGTH = 64


@dataclass
class CreateSaleRequest:
    """Checkout request: what was bought and how it is paid."""
    payment_method: str
    items: List[CartLine] = field(default_factory=list)
    customer_name: Optional[str] = None
    cash_received: Optional[Decimal] = None
    idempotency_key: Optional[str] = None


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a JSON number (or numeric string) into a finite Decimal."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f'El campo "{field_name}" debe ser numérico')
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f'El campo "{field_name}" debe ser numérico')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'El campo "{field_name}" debe ser numérico')
    if not number.is_finite():
        raise ValidationError(f'El campo "{field_name}" debe ser numérico')
    return number


def parse_custom_discount_percent(value: Any) -> Decimal:
    """
    Parse the operator-requested discount percentage.

    Missing or blank means no request (0). Negative values are treated as no
    request. Values above the maximum are accepted here and clamped by the
    promotion engine.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal('0')
    percent = parse_decimal(value, 'custom_discount_percent')
    if percent < 0:
        return Decimal('0')
    return percent


def _parse_quantity(value: Any, index: int) -> int:
    quantity = parse_decimal(value, f'items[{index}].quantity')
    if quantity != quantity.to_integral_value():
        raise ValidationError('La cantidad debe ser un número entero')
    if quantity <= 0:
        raise ValidationError('La cantidad debe ser mayor a 0')
    return int(quantity)


def _parse_product_id(value: Any, index: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'Producto inválido en la línea {index + 1}')
    try:
        product_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Producto inválido en la línea {index + 1}')
    if product_id <= 0:
        raise ValidationError(f'Producto inválido en la línea {index + 1}')
    return product_id


def parse_cart_lines(raw_items: Any) -> List[CartLine]:
    """Parse the `items` array of a cart payload."""
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError('El campo "items" debe ser una lista')

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f'Línea {index + 1} inválida')

        unit_price = parse_decimal(raw.get('unit_price'), f'items[{index}].unit_price')
        if unit_price < 0:
            raise ValidationError('El precio no puede ser negativo')

        lines.append(CartLine(
            product_id=_parse_product_id(raw.get('product_id'), index),
            product_name=str(raw.get('product_name') or '').strip(),
            quantity=_parse_quantity(raw.get('quantity'), index),
            unit_price=unit_price,
        ))
    return lines


def parse_create_sale_request(payload: Any) -> CreateSaleRequest:
    """Build a CreateSaleRequest from a JSON body."""
    if not isinstance(payload, dict):
        raise ValidationError('Solicitud inválida')

    items = parse_cart_lines(payload.get('items'))
    if not items:
        raise ValidationError('Se requiere al menos un artículo')

    method = str(payload.get('payment_method') or '').strip().lower()
    valid_methods = [m.value for m in PaymentMethod]
    if method not in valid_methods:
        raise ValidationError(f'Método de pago inválido: {method or "(vacío)"}')

    cash_received = None
    if payload.get('cash_received') not in (None, ''):
        cash_received = parse_decimal(payload.get('cash_received'), 'cash_received')
        if cash_received < 0:
            raise ValidationError('El monto recibido no puede ser negativo')

    customer_name = payload.get('customer_name')
    if customer_name is not None:
        customer_name = str(customer_name).strip()[:MAX_CUSTOMER_NAME_LENGTH] or None

    idempotency_key = payload.get('idempotency_key')
    if idempotency_key is not None:
        idempotency_key = str(idempotency_key).strip() or None
        if idempotency_key and len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError('Clave de idempotencia demasiado larga')

    return CreateSaleRequest(
        payment_method=method,
        items=items,
        customer_name=customer_name,
        cash_received=cash_received,
        idempotency_key=idempotency_key,
    )
