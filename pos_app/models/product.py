"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos_app.database import Base, BigIntId


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    category = Column(String(100), nullable=False)
    sale_price = Column(Numeric(12, 2), nullable=False)
    image_url = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    # Cascade delete-orphan: Al eliminar el producto, se elimina automáticamente su stock
    stock = relationship('ProductStock', uselist=False, back_populates='product', cascade="all, delete-orphan")
    promotion_links = relationship(
        'ProductPromotion',
        back_populates='product',
        cascade="all, delete-orphan",
        order_by='ProductPromotion.id'
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"

    @property
    def on_hand_qty(self):
        """Get on hand quantity from stock."""
        if self.stock:
            return self.stock.on_hand_qty
        return 0

    @property
    def promotions(self):
        """Promotions bound to this product, in catalog order."""
        return [link.promotion for link in self.promotion_links]
