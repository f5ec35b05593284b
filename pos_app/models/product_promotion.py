"""Product <-> Promotion association model."""
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from pos_app.database import Base, BigIntId


class ProductPromotion(Base):
    """
    Binding of a promotion to a product.

    The autoincrement id defines catalog order: when several promotions of the
    same kind could apply to a product, the oldest binding wins.
    """

    __tablename__ = 'product_promotion'
    __table_args__ = (
        UniqueConstraint('product_id', 'promotion_id', name='uq_product_promotion'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    product_id = Column(BigIntId, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    promotion_id = Column(String(64), ForeignKey('promotion.id', ondelete='CASCADE'), nullable=False)

    # Relationships
    product = relationship('Product', back_populates='promotion_links')
    promotion = relationship('Promotion', back_populates='product_links')

    def __repr__(self):
        return f"<ProductPromotion(product_id={self.product_id}, promotion_id='{self.promotion_id}')>"
