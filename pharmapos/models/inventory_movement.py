"""Inventory movement model - append-only stock audit log."""
from sqlalchemy import Column, Integer, Numeric, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK
import enum


class MovementType(enum.Enum):
    """Movement type enum."""
    SALE = 'venta'
    REFUND = 'devolucion'
    PURCHASE = 'entrada'
    ADJUSTMENT = 'ajuste'


class MovementReferenceType(enum.Enum):
    """What document caused the movement."""
    SALE = 'sale'
    REFUND = 'refund'
    MANUAL = 'manual'


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class InventoryMovement(Base):
    """Inventory Movement (kardex)."""

    __tablename__ = 'inventory_movement'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigIntPK, ForeignKey('product.id'), nullable=False, index=True)
    location_id = Column(BigIntPK, ForeignKey('location.id'), nullable=False)
    movement_type = Column(Enum(MovementType, name='movement_type', values_callable=_enum_values), nullable=False)
    quantity = Column(Integer, nullable=False)  # negative for outgoing stock
    unit_cost = Column(Numeric(12, 2), nullable=True)
    total_cost = Column(Numeric(12, 2), nullable=True)
    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)
    reference_type = Column(Enum(MovementReferenceType, name='movement_ref_type', values_callable=_enum_values), nullable=False)
    reference_id = Column(BigIntPK, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product')
    location = relationship('Location')

    def __repr__(self):
        return (f"<InventoryMovement(id={self.id}, type={self.movement_type.value}, "
                f"qty={self.quantity}, {self.stock_before}->{self.stock_after})>")
