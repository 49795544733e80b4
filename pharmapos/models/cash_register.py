"""Cash register session model."""
from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK


class CashRegisterSession(Base):
    """A cashier's shift on one register, from opening to closing count."""

    __tablename__ = 'cash_register_session'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigIntPK, ForeignKey('app_user.id'), nullable=False, index=True)
    register_name = Column(String(80), nullable=False, default='Principal')
    opening_amount = Column(Numeric(12, 2), nullable=False, default=0)
    closing_amount = Column(Numeric(12, 2), nullable=True)
    total_sales = Column(Numeric(12, 2), nullable=False, default=0)
    total_cash = Column(Numeric(12, 2), nullable=False, default=0)
    total_card = Column(Numeric(12, 2), nullable=False, default=0)
    total_other = Column(Numeric(12, 2), nullable=False, default=0)
    total_transactions = Column(Integer, nullable=False, default=0)
    status = Column(String(10), nullable=False, default='open')  # open | closed
    opened_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    user = relationship('AppUser', back_populates='register_sessions')

    @property
    def expected_cash(self):
        """Cash that should be in the drawer: opening float plus cash sales."""
        return (self.opening_amount or 0) + (self.total_cash or 0)

    @property
    def difference(self):
        """Counted minus expected; negative means a shortfall."""
        if self.closing_amount is None:
            return None
        return self.closing_amount - self.expected_cash

    def __repr__(self):
        return f"<CashRegisterSession(id={self.id}, register='{self.register_name}', status={self.status})>"
