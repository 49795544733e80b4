"""Quote models."""
from sqlalchemy import Column, String, Text, Integer, Numeric, Date, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = 'draft'
    SENT = 'sent'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


class Quote(Base):
    """Quote (presupuesto); prices include tax."""

    __tablename__ = 'quote'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_number = Column(String(32), nullable=False, unique=True)
    client_id = Column(BigIntPK, ForeignKey('client.id'), nullable=True)
    subtotal_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(QuoteStatus, name='quote_status', values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=QuoteStatus.DRAFT)
    notes = Column(Text, nullable=True)
    valid_until = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    client = relationship('Client')
    items = relationship('QuoteItem', back_populates='quote', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Quote(id={self.id}, number={self.quote_number}, status={self.status.value})>"


class QuoteItem(Base):
    """Quote line."""

    __tablename__ = 'quote_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigIntPK, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigIntPK, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)  # tax included
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)

    # Relationships
    quote = relationship('Quote', back_populates='items')
    product = relationship('Product')
