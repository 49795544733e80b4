"""Sale model."""
from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class SaleStatus(enum.Enum):
    """Sale status enum."""
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class Sale(Base):
    """Sale (venta): header of a completed checkout."""

    __tablename__ = 'sale'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_number = Column(String(32), nullable=False, unique=True)
    client_id = Column(BigIntPK, ForeignKey('client.id'), nullable=True)
    cashier_id = Column(BigIntPK, ForeignKey('app_user.id'), nullable=True)
    register_session_id = Column(BigIntPK, ForeignKey('cash_register_session.id'), nullable=True)
    subtotal_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=True)
    points_redeemed = Column(Integer, nullable=False, default=0)
    status = Column(Enum(SaleStatus, name='sale_status', values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=SaleStatus.COMPLETED)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    client = relationship('Client', back_populates='sales')
    cashier = relationship('AppUser')
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan',
                         order_by='SaleItem.id')
    payments = relationship('Payment', back_populates='sale', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Sale(id={self.id}, number={self.sale_number}, total={self.total_amount})>"
