"""
Sales service with transactional logic.
Re-evaluates promotions, checks stock and persists the sale atomically.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pos_app.database import is_postgres
from pos_app.exceptions import (
    PosError, ValidationError, NotFoundError, InsufficientStockError, ProductUnavailableError
)
from pos_app.models import Product, ProductStock, Sale, SaleLine, PaymentMethod
from pos_app.services.cart_request import CreateSaleRequest
from pos_app.services.promotion_catalog import PromotionCatalog, SqlPromotionCatalog
from pos_app.services.promotion_engine import CartLine, EvaluationResult, evaluate_promotions, json_number
from pos_app.utils.formatters import money_crc

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 500


@dataclass(frozen=True)
class SaleResult:
    """Outcome of a checkout."""
    sale_id: int
    total: Decimal
    change_amount: Optional[Decimal] = None
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sale_id': self.sale_id,
            'total': json_number(Decimal(self.total)),
            'change_amount': json_number(Decimal(self.change_amount)) if self.change_amount is not None else None,
            'duplicate': self.duplicate,
        }


def create_sale(
    sale_request: CreateSaleRequest,
    session: Session,
    user_id: int,
    custom_discount_percent: Decimal = Decimal('0'),
    catalog: Optional[PromotionCatalog] = None,
    timeout_ms: Optional[int] = None
) -> SaleResult:
    """
    Finalize a sale.

    Every money field comes from a fresh promotion evaluation; the stock
    check and the decrement happen in the same transaction, the decrement
    being conditional on the stock still being sufficient.

    Raises:
        ValidationError: empty cart, bad payment data.
        ProductUnavailableError: product missing or inactive.
        InsufficientStockError: not enough stock (checked and post-checked).
    """
    _validate_request(sale_request)

    if sale_request.idempotency_key:
        existing = _find_by_idempotency_key(session, sale_request.idempotency_key)
        if existing:
            logger.info(f"[SALE] Idempotent replay for key {sale_request.idempotency_key} -> sale #{existing.id}")
            return _result_from_sale(existing, duplicate=True)

    try:
        _apply_statement_timeout(session, timeout_ms)

        # 1. Lock stock rows and validate availability
        quantities = _aggregate_quantities(sale_request.items)
        products = _load_products(session, list(quantities.keys()))
        stocks = _lock_stocks(session, list(quantities.keys()))
        _validate_availability(sale_request.items, products, stocks, quantities)

        # 2. Re-evaluate with current catalog prices and promotions
        lines = [
            CartLine(
                product_id=item.product_id,
                product_name=products[item.product_id].name,
                quantity=item.quantity,
                unit_price=Decimal(str(products[item.product_id].sale_price)),
            )
            for item in sale_request.items
        ]
        for submitted, line in zip(sale_request.items, lines):
            if submitted.unit_price != line.unit_price:
                logger.warning(
                    f"[SALE] Submitted price {submitted.unit_price} for product #{line.product_id} "
                    f"differs from catalog price {line.unit_price}; using catalog price"
                )

        evaluation = evaluate_promotions(
            lines, catalog or SqlPromotionCatalog(session), custom_discount_percent
        )

        # 3. Payment
        change_amount = _resolve_change(sale_request, evaluation.total)

        # 4. Persist sale, lines and stock decrements
        sale = _build_sale(sale_request, evaluation, user_id, change_amount)
        session.add(sale)
        session.flush()

        for line in evaluation.lines:
            session.add(SaleLine(
                sale_id=sale.id,
                product_id=line.product_id,
                product_name=line.product_name,
                qty=line.quantity,
                unit_price=line.unit_price,
                line_subtotal=line.line_subtotal,
                line_discount=line.line_discount,
                promotion_applied=line.applied_promotion_label
            ))

        for product_id, qty in quantities.items():
            _decrement_stock(session, products[product_id], qty, stocks.get(product_id))

        session.commit()

    except IntegrityError:
        session.rollback()
        # Concurrent submit with the same key won the race
        if sale_request.idempotency_key:
            existing = _find_by_idempotency_key(session, sale_request.idempotency_key)
            if existing:
                logger.info(f"[SALE] Concurrent replay for key {sale_request.idempotency_key} -> sale #{existing.id}")
                return _result_from_sale(existing, duplicate=True)
        logger.exception("[SALE] Integrity error while creating sale")
        raise
    except PosError as e:
        session.rollback()
        logger.warning(f"[SALE] Sale rejected: {e.message}")
        raise
    except Exception:
        session.rollback()
        logger.exception("[SALE] Unexpected error while creating sale")
        raise

    logger.info(
        f"[SALE] Sale #{sale.id} created by user #{user_id}: total={evaluation.total} "
        f"promotion={evaluation.active_promotion.value} method={sale.payment_method}"
    )
    return _result_from_sale(sale)


def get_sale(session: Session, sale_id: int) -> Sale:
    """Get sale by id or raise NotFoundError."""
    sale = session.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError(f'Venta #{sale_id} no encontrada')
    return sale


def list_recent_sales(session: Session, limit: int = 100) -> List[Sale]:
    """Most recent sales first."""
    limit = max(1, min(int(limit), MAX_LIST_LIMIT))
    return session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def serialize_sale(sale: Sale, include_lines: bool = True) -> Dict[str, Any]:
    """Plain dict for JSON responses."""
    data = {
        'id': sale.id,
        'user_id': sale.user_id,
        'user_name': sale.user.full_name if sale.user else None,
        'customer_name': sale.customer_name,
        'subtotal': _money(sale.subtotal),
        'tax': _money(sale.tax),
        'promotion_discount': _money(sale.promotion_discount),
        'custom_discount': _money(sale.custom_discount),
        'custom_discount_percent': float(sale.custom_discount_percent or 0),
        'discount': _money(sale.discount),
        'total': _money(sale.total),
        'active_promotion': sale.active_promotion,
        'payment_method': sale.payment_method,
        'cash_received': _money(sale.cash_received),
        'change_amount': _money(sale.change_amount),
        'created_at': sale.created_at.isoformat() if sale.created_at else None,
    }
    if include_lines:
        data['lines'] = [
            {
                'id': line.id,
                'product_id': line.product_id,
                'product_name': line.product_name,
                'quantity': line.qty,
                'unit_price': _money(line.unit_price),
                'line_subtotal': _money(line.line_subtotal),
                'line_discount': _money(line.line_discount),
                'promotion_applied': line.promotion_applied,
            }
            for line in sale.lines
        ]
    return data


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _money(value):
    if value is None:
        return None
    return json_number(Decimal(str(value)))


def _validate_request(sale_request: CreateSaleRequest) -> None:
    """Reject malformed requests before anything is read or written."""
    if not sale_request.items:
        raise ValidationError('Se requiere al menos un artículo')

    valid_methods = [m.value for m in PaymentMethod]
    if sale_request.payment_method not in valid_methods:
        raise ValidationError(f'Método de pago inválido: {sale_request.payment_method or "(vacío)"}')

    for item in sale_request.items:
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
            raise ValidationError('La cantidad debe ser un entero mayor a 0')
        if item.unit_price < 0:
            raise ValidationError('El precio no puede ser negativo')

    if sale_request.cash_received is not None and sale_request.cash_received < 0:
        raise ValidationError('El monto recibido no puede ser negativo')


def _find_by_idempotency_key(session: Session, key: str) -> Optional[Sale]:
    return session.query(Sale).filter(Sale.idempotency_key == key).first()


def _result_from_sale(sale: Sale, duplicate: bool = False) -> SaleResult:
    change = Decimal(str(sale.change_amount)) if sale.change_amount is not None else None
    return SaleResult(
        sale_id=sale.id,
        total=Decimal(str(sale.total)),
        change_amount=change,
        duplicate=duplicate
    )


def _apply_statement_timeout(session: Session, timeout_ms: Optional[int]) -> None:
    """Bound the checkout transaction on PostgreSQL."""
    if timeout_ms and is_postgres(session):
        session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def _aggregate_quantities(items: List[CartLine]) -> "OrderedDict[int, int]":
    """Total requested quantity per product, in cart order."""
    quantities: "OrderedDict[int, int]" = OrderedDict()
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


def _load_products(session: Session, product_ids: List[int]) -> Dict[int, Product]:
    products = session.query(Product).filter(Product.id.in_(product_ids)).all()
    return {p.id: p for p in products}


def _lock_stocks(session: Session, product_ids: List[int]) -> Dict[int, ProductStock]:
    """Lock product_stock rows FOR UPDATE (ordered by id to avoid deadlocks)."""
    if not product_ids:
        return {}
    stocks = session.query(ProductStock).filter(
        ProductStock.product_id.in_(product_ids)
    ).order_by(ProductStock.product_id).with_for_update().all()
    return {s.product_id: s for s in stocks}


def _validate_availability(
    items: List[CartLine],
    products: Dict[int, Product],
    stocks: Dict[int, ProductStock],
    quantities: Dict[int, int]
) -> None:
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise ProductUnavailableError(item.product_name or f'#{item.product_id}')
        if not product.active:
            raise ProductUnavailableError(product.name)

    for product_id, qty in quantities.items():
        stock = stocks.get(product_id)
        available = stock.on_hand_qty if stock else 0
        if available < qty:
            raise InsufficientStockError(products[product_id].name, qty, available)


def _resolve_change(sale_request: CreateSaleRequest, total: Decimal) -> Optional[Decimal]:
    """Change to return for cash payments; None for other methods."""
    if sale_request.payment_method != PaymentMethod.CASH.value:
        return None
    if sale_request.cash_received is None:
        raise ValidationError('Debe indicar el monto recibido en efectivo')
    if sale_request.cash_received < total:
        raise ValidationError(
            f'El monto recibido ({money_crc(sale_request.cash_received)}) '
            f'es menor al total ({money_crc(total)})',
            payload={'cash_received': float(sale_request.cash_received), 'total': float(total)}
        )
    return sale_request.cash_received - total


def _build_sale(
    sale_request: CreateSaleRequest,
    evaluation: EvaluationResult,
    user_id: int,
    change_amount: Optional[Decimal]
) -> Sale:
    is_cash = sale_request.payment_method == PaymentMethod.CASH.value
    return Sale(
        user_id=user_id,
        customer_name=sale_request.customer_name,
        subtotal=evaluation.subtotal,
        tax=evaluation.tax,
        promotion_discount=evaluation.promotion_discount,
        custom_discount=evaluation.custom_discount,
        custom_discount_percent=evaluation.effective_custom_percent,
        discount=evaluation.total_discount,
        total=evaluation.total,
        active_promotion=evaluation.active_promotion.value,
        payment_method=sale_request.payment_method,
        cash_received=sale_request.cash_received if is_cash else None,
        change_amount=change_amount,
        idempotency_key=sale_request.idempotency_key
    )


def _decrement_stock(session: Session, product: Product, qty: int, stock: Optional[ProductStock]) -> None:
    """Atomic conditional decrement; zero affected rows means someone sold it first."""
    result = session.execute(
        update(ProductStock)
        .where(ProductStock.product_id == product.id, ProductStock.on_hand_qty >= qty)
        .values(on_hand_qty=ProductStock.on_hand_qty - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = session.query(ProductStock.on_hand_qty).filter(
            ProductStock.product_id == product.id
        ).scalar() or 0
        raise InsufficientStockError(product.name, qty, available)
    if stock is not None:
        session.expire(stock)
