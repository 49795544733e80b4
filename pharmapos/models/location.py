"""Location model."""
from sqlalchemy import Column, String, Boolean
from pharmapos.database import Base, BigIntPK


class Location(Base):
    """Stock location (mostrador, bodega, vitrina...)."""

    __tablename__ = 'location'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}')>"
