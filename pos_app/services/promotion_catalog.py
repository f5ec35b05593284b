"""
Promotion catalog lookup.

The promotion engine never reads the database directly: it is handed a
catalog object that returns the active promotions bound to each product.
Catalog order (the order of the product/promotion bindings) is preserved,
since the engine applies the first matching promotion.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from pos_app.models import Promotion, ProductPromotion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivePromotion:
    """Read-only view of a catalog promotion."""
    promotion_id: str
    name: str
    kind: str
    min_quantity: Optional[int] = 2
    discount_value: Decimal = Decimal('0')
    is_active: bool = True

    @classmethod
    def from_model(cls, promotion: Promotion) -> 'ActivePromotion':
        return cls(
            promotion_id=promotion.id,
            name=promotion.name,
            kind=promotion.type,
            min_quantity=promotion.min_quantity,
            discount_value=Decimal(str(promotion.discount_value or 0)),
            is_active=bool(promotion.is_active),
        )

    def to_dict(self) -> Dict:
        return {
            'promotion_id': self.promotion_id,
            'name': self.name,
            'kind': self.kind,
            'min_quantity': self.min_quantity,
            'discount_value': float(self.discount_value),
            'is_active': self.is_active,
        }


class PromotionCatalog(Protocol):
    """Anything able to answer 'which active promotions apply to these products'."""

    def get_active_promotions_for_products(self, product_ids: Iterable[int]) -> Dict[int, List[ActivePromotion]]:
        ...


class SqlPromotionCatalog:
    """Catalog backed by the promotion / product_promotion tables."""

    def __init__(self, session: Session):
        self.session = session

    def get_active_promotions_for_products(self, product_ids: Iterable[int]) -> Dict[int, List[ActivePromotion]]:
        """Fetch active promotions for all products in a single query."""
        ids = list(dict.fromkeys(int(pid) for pid in product_ids))
        if not ids:
            return {}

        rows = self.session.query(ProductPromotion.product_id, Promotion).join(
            Promotion, ProductPromotion.promotion_id == Promotion.id
        ).filter(
            ProductPromotion.product_id.in_(ids),
            Promotion.is_active == True
        ).order_by(ProductPromotion.id).all()

        promotions: Dict[int, List[ActivePromotion]] = {}
        for product_id, promotion in rows:
            promotions.setdefault(product_id, []).append(ActivePromotion.from_model(promotion))

        logger.debug(f"[PROMO] {len(rows)} active promotion bindings for {len(ids)} products")
        return promotions


class InMemoryPromotionCatalog:
    """Catalog held in memory; bindings keep insertion order."""

    def __init__(self, bindings: Optional[Dict[int, List[ActivePromotion]]] = None):
        self._bindings: Dict[int, List[ActivePromotion]] = {}
        for product_id, promotions in (bindings or {}).items():
            for promotion in promotions:
                self.bind(product_id, promotion)

    def bind(self, product_id: int, promotion: ActivePromotion) -> None:
        self._bindings.setdefault(int(product_id), []).append(promotion)

    def get_active_promotions_for_products(self, product_ids: Iterable[int]) -> Dict[int, List[ActivePromotion]]:
        result = {}
        for pid in product_ids:
            active = [p for p in self._bindings.get(int(pid), []) if p.is_active]
            if active:
                result[int(pid)] = active
        return result


def list_active_promotions(session: Session) -> List[Promotion]:
    """All active promotions, oldest first."""
    return session.query(Promotion).filter(
        Promotion.is_active == True
    ).order_by(Promotion.created_at, Promotion.id).all()
