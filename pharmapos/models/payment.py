"""Payment model."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    CARD = 'card'
    TRANSFER = 'transfer'
    OTHER = 'other'


PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: 'EFECTIVO',
    PaymentMethod.CARD: 'TARJETA',
    PaymentMethod.TRANSFER: 'TRANSFERENCIA',
    PaymentMethod.OTHER: 'OTRO',
}


def normalize_payment_method(value):
    """Return the PaymentMethod for `value` or None when it is not recognised."""
    if isinstance(value, PaymentMethod):
        return value
    if not value:
        return None
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        return None


class Payment(Base):
    """Payment registered against a sale."""

    __tablename__ = 'payment'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigIntPK, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    # Only for cash payments
    amount_received = Column(Numeric(12, 2))
    change_amount = Column(Numeric(12, 2))

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    sale = relationship('Sale', back_populates='payments')

    def __repr__(self):
        return f"<Payment(id={self.id}, sale_id={self.sale_id}, method={self.payment_method}, amount={self.amount})>"
