"""Sales blueprint: promotion evaluation and checkout (JSON API)."""
from flask import Blueprint, request, jsonify, current_app, g, Response
from typing import Tuple, Union

from pos_app.database import get_session
from pos_app.blueprints.metrics import record_evaluation, record_sale, record_rejection
from pos_app.exceptions import PosError, ValidationError
from pos_app.middleware import require_login
from pos_app.services.cart_request import (
    parse_cart_lines, parse_custom_discount_percent, parse_create_sale_request
)
from pos_app.services.promotion_catalog import SqlPromotionCatalog, ActivePromotion, list_active_promotions
from pos_app.services.promotion_engine import evaluate_promotions
from pos_app.services.sales_service import create_sale, get_sale, list_recent_sales, serialize_sale

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')

JsonResponse = Union[Response, Tuple[Response, int]]


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Se esperaba un cuerpo JSON')
    return payload


def _parse_request_seq(payload: dict):
    """Echoed back untouched so the POS screen can discard stale responses."""
    seq = payload.get('request_seq')
    if seq is None:
        return None
    if isinstance(seq, bool) or not isinstance(seq, int):
        raise ValidationError('El campo "request_seq" debe ser un entero')
    return seq


@sales_bp.route('/evaluate', methods=['POST'])
@require_login
def evaluate() -> JsonResponse:
    """
    Evaluate cart promotions server-side.

    Called by the POS screen on every (debounced) cart change. Read-only.
    """
    payload = _json_body()
    request_seq = _parse_request_seq(payload)
    lines = parse_cart_lines(payload.get('items'))
    percent = parse_custom_discount_percent(payload.get('custom_discount_percent'))

    db_session = get_session()
    result = evaluate_promotions(lines, SqlPromotionCatalog(db_session), percent)
    record_evaluation(result.active_promotion.value)

    return jsonify({
        'status': 'ok',
        'request_seq': request_seq,
        'result': result.to_dict()
    })


@sales_bp.route('', methods=['POST'])
@require_login
def create() -> JsonResponse:
    """
    Confirm a sale.

    Totals sent by the client are ignored; the finalizer re-evaluates the cart.
    """
    db_session = get_session()

    try:
        payload = _json_body()
        sale_request = parse_create_sale_request(payload)
        percent = parse_custom_discount_percent(payload.get('custom_discount_percent'))

        result = create_sale(
            sale_request,
            db_session,
            user_id=g.user_id,
            custom_discount_percent=percent,
            timeout_ms=current_app.config.get('SALE_TRANSACTION_TIMEOUT_MS')
        )
    except PosError as e:
        record_rejection(e.code)
        raise

    if not result.duplicate:
        record_sale(sale_request.payment_method)
        current_app.logger.info(f"Venta #{result.sale_id} confirmada por usuario #{g.user_id}")

    body = {'status': 'ok'}
    body.update(result.to_dict())
    return jsonify(body), (200 if result.duplicate else 201)


@sales_bp.route('', methods=['GET'])
@require_login
def list_sales() -> JsonResponse:
    """Recent sales, newest first."""
    try:
        limit = int(request.args.get('limit', 100))
    except ValueError:
        raise ValidationError('El parámetro "limit" debe ser un entero')

    sales = list_recent_sales(get_session(), limit=limit)
    return jsonify({
        'status': 'ok',
        'sales': [serialize_sale(sale, include_lines=False) for sale in sales]
    })


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_login
def detail_sale(sale_id: int) -> JsonResponse:
    """Sale with its lines (receipt data)."""
    sale = get_sale(get_session(), sale_id)
    return jsonify({'status': 'ok', 'sale': serialize_sale(sale)})


@sales_bp.route('/promotions', methods=['GET'])
@require_login
def promotions() -> JsonResponse:
    """Active promotions in the catalog."""
    promos = list_active_promotions(get_session())
    return jsonify({
        'status': 'ok',
        'promotions': [
            dict(ActivePromotion.from_model(p).to_dict(), product_ids=[link.product_id for link in p.product_links])
            for p in promos
        ]
    })
