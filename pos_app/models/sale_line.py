"""Sale Line model."""
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos_app.database import Base, BigIntId


class SaleLine(Base):
    """Sale Line (detalle de venta) - snapshot of what was charged."""

    __tablename__ = 'sale_line'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sale_id = Column(BigIntId, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigIntId, ForeignKey('product.id'), nullable=False)
    product_name = Column(String(150), nullable=False)
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_subtotal = Column(Numeric(12, 2), nullable=False)
    line_discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    promotion_applied = Column(String(150), nullable=True)

    # Relationships
    sale = relationship('Sale', back_populates='lines')
    product = relationship('Product')

    def __repr__(self):
        return f"<SaleLine(id={self.id}, product_id={self.product_id}, qty={self.qty})>"
