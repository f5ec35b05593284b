"""Promotion model."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos_app.database import Base
import enum


class PromotionType(str, enum.Enum):
    """Kinds of promotion the catalog can hold."""
    TWO_FOR_ONE = 'two_for_one'
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class Promotion(Base):
    """
    Promotion (promoción) bound to products through ProductPromotion.

    Only active promotions are visible to the promotion engine.
    """

    __tablename__ = 'promotion'

    id = Column(String(64), primary_key=True)  # Slug, e.g. 'gelatina-2x1'
    name = Column(String(150), nullable=False)
    type = Column(String(20), nullable=False, default=PromotionType.TWO_FOR_ONE.value)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    min_quantity = Column(Integer, nullable=True, default=2)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product_links = relationship(
        'ProductPromotion',
        back_populates='promotion',
        cascade='all, delete-orphan',
        order_by='ProductPromotion.id'
    )

    def __repr__(self):
        return f"<Promotion(id='{self.id}', type='{self.type}', active={self.is_active})>"
