"""Inventory record model - stock of one product at one location."""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK


class InventoryRecord(Base):
    """Inventory row; one per (product, location)."""

    __tablename__ = 'inventory'
    __table_args__ = (
        UniqueConstraint('product_id', 'location_id', name='uq_inventory_product_location'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigIntPK, ForeignKey('product.id'), nullable=False, index=True)
    location_id = Column(BigIntPK, ForeignKey('location.id'), nullable=False)
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product', back_populates='inventory')
    location = relationship('Location')

    @property
    def is_low(self):
        return self.current_stock <= self.min_stock

    def __repr__(self):
        return (f"<InventoryRecord(product_id={self.product_id}, location_id={self.location_id}, "
                f"current_stock={self.current_stock})>")
