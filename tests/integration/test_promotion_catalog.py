"""
Integration tests for the SQL-backed promotion catalog.
"""

from decimal import Decimal

from pos_app.models import Promotion, PromotionType, ProductPromotion
from pos_app.services.promotion_catalog import SqlPromotionCatalog, list_active_promotions
from pos_app.services.promotion_engine import ActivePromotionKind, CartLine, evaluate_promotions


def _add_promotion(session, promotion_id, name, product_id, is_active=True, min_quantity=2):
    session.add(Promotion(
        id=promotion_id, name=name, type=PromotionType.TWO_FOR_ONE.value,
        min_quantity=min_quantity, is_active=is_active
    ))
    session.flush()
    session.add(ProductPromotion(product_id=product_id, promotion_id=promotion_id))
    session.commit()


def test_bindings_for_cart_products(session, catalog):
    result = SqlPromotionCatalog(session).get_active_promotions_for_products(
        [catalog['gelatina'], catalog['papas']]
    )

    assert list(result.keys()) == [catalog['gelatina']]
    promotion = result[catalog['gelatina']][0]
    assert promotion.promotion_id == 'gelatina-2x1'
    assert promotion.kind == 'two_for_one'
    assert promotion.min_quantity == 2


def test_no_products_no_query(session):
    assert SqlPromotionCatalog(session).get_active_promotions_for_products([]) == {}


def test_inactive_promotions_are_hidden(session, catalog):
    _add_promotion(session, 'papas-2x1', 'Papas 2x1', catalog['papas'], is_active=False)

    result = SqlPromotionCatalog(session).get_active_promotions_for_products([catalog['papas']])

    assert result == {}
    assert [p.id for p in list_active_promotions(session)] == ['gelatina-2x1']


def test_binding_order_decides_label(session, catalog):
    _add_promotion(session, 'postres-2x1', 'Postres 2x1', catalog['gelatina'])

    result = SqlPromotionCatalog(session).get_active_promotions_for_products([catalog['gelatina']])
    assert [p.promotion_id for p in result[catalog['gelatina']]] == ['gelatina-2x1', 'postres-2x1']

    evaluation = evaluate_promotions(
        [CartLine(catalog['gelatina'], 'Gelatina de Fresa', 2, Decimal('2000'))],
        SqlPromotionCatalog(session)
    )
    assert evaluation.active_promotion == ActivePromotionKind.TWO_FOR_ONE
    assert evaluation.lines[0].applied_promotion_label == 'Gelatina 2x1'
