"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntPK


class Product(Base):
    """Product model (medicamentos y artículos de farmacia)."""

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=True, unique=True)
    barcode = Column(String(64), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    sale_price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)
    requires_prescription = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    inventory = relationship('InventoryRecord', back_populates='product', cascade='all, delete-orphan')

    @property
    def total_stock(self):
        """Stock summed over every location."""
        return sum(record.current_stock for record in self.inventory)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
