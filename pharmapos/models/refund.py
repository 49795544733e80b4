"""Refund models."""
from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class RefundStatus(enum.Enum):
    """Refund lifecycle."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class Refund(Base):
    """Refund (devolución) of some or all items of a sale."""

    __tablename__ = 'refund'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigIntPK, ForeignKey('sale.id'), nullable=False, index=True)
    client_id = Column(BigIntPK, ForeignKey('client.id'), nullable=True)
    refund_reason = Column(Text, nullable=False)
    refund_method = Column(String(20), nullable=False)
    refund_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(RefundStatus, name='refund_status', values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=RefundStatus.PENDING)
    user_id = Column(BigIntPK, ForeignKey('app_user.id'), nullable=True)
    approved_by = Column(BigIntPK, ForeignKey('app_user.id'), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    sale = relationship('Sale')
    items = relationship('RefundItem', back_populates='refund', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Refund(id={self.id}, sale_id={self.sale_id}, status={self.status.value})>"


class RefundItem(Base):
    """One returned product line."""

    __tablename__ = 'refund_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    refund_id = Column(BigIntPK, ForeignKey('refund.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigIntPK, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)

    # Relationships
    refund = relationship('Refund', back_populates='items')
    product = relationship('Product')
