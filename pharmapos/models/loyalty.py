"""Loyalty plan and ledger models."""
from sqlalchemy import Column, String, Text, Integer, Numeric, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class LoyaltyTransactionType(enum.Enum):
    """Ledger entry kind."""
    EARN = 'earn'
    REDEEM = 'redeem'
    ADJUST = 'adjust'


class LoyaltyPlan(Base):
    """Ruleset converting currency into points and back."""

    __tablename__ = 'loyalty_plan'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    points_per_currency = Column(Numeric(10, 4), nullable=False, default=1)
    currency_per_point = Column(Numeric(10, 4), nullable=False, default=0)
    min_purchase_for_points = Column(Numeric(12, 2), nullable=False, default=0)
    welcome_points = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<LoyaltyPlan(id={self.id}, name='{self.name}', active={self.active})>"


class LoyaltyTransaction(Base):
    """Append-only ledger entry of a points change."""

    __tablename__ = 'loyalty_transaction'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    client_id = Column(BigIntPK, ForeignKey('client.id'), nullable=False, index=True)
    transaction_type = Column(
        Enum(LoyaltyTransactionType, name='loyalty_tx_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    points = Column(Integer, nullable=False)  # signed
    description = Column(String(255), nullable=True)
    reference_type = Column(String(20), nullable=True)
    reference_id = Column(BigIntPK, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    client = relationship('Client', back_populates='loyalty_transactions')

    def __repr__(self):
        return f"<LoyaltyTransaction(client_id={self.client_id}, type={self.transaction_type.value}, points={self.points})>"
