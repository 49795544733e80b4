"""Client model."""
from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK


class Client(Base):
    """Client (cliente) with loyalty balance."""

    __tablename__ = 'client'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    identification_number = Column(String(50), nullable=True, unique=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    loyalty_points = Column(Integer, nullable=False, default=0)
    total_purchases = Column(Numeric(12, 2), nullable=False, default=0)
    last_purchase_date = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    sales = relationship('Sale', back_populates='client')
    loyalty_transactions = relationship('LoyaltyTransaction', back_populates='client',
                                        order_by='LoyaltyTransaction.id')

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', points={self.loyalty_points})>"
