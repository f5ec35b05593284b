"""Sale model."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos_app.database import Base, BigIntId
import enum


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    CARD = 'card'
    TRANSFER = 'transfer'


class Sale(Base):
    """
    Sale (venta confirmada).

    Money columns are written once from the promotion engine result at
    checkout; the row is immutable afterwards.
    """

    __tablename__ = 'sale'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigIntId, ForeignKey('app_user.id'), nullable=False)
    customer_name = Column(String(150), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    promotion_discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    custom_discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    custom_discount_percent = Column(Numeric(4, 1), nullable=False, default=0, server_default='0')
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')  # promotion + custom
    total = Column(Numeric(12, 2), nullable=False)
    active_promotion = Column(String(20), nullable=False, default='none', server_default='none')

    payment_method = Column(String(20), nullable=False)
    cash_received = Column(Numeric(12, 2), nullable=True)
    change_amount = Column(Numeric(12, 2), nullable=True)

    # Idempotency key to prevent duplicate sales on retried submits
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser')
    lines = relationship('SaleLine', back_populates='sale', cascade='all, delete-orphan', order_by='SaleLine.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, total={self.total}, payment_method={self.payment_method})>"
