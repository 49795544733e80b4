"""Settings models: company identity, taxes, printing and devices."""
from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, JSON
from pharmapos.database import Base, BigIntPK


class CompanySettings(Base):
    """Company identity printed on receipts (single row)."""

    __tablename__ = 'company_settings'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    legal_name = Column(String(200), nullable=True)
    tax_id = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    health_license = Column(String(80), nullable=True)
    currency_symbol = Column(String(5), nullable=False, default='$')


class TaxSetting(Base):
    """Tax rate; the active default one applies at checkout."""

    __tablename__ = 'tax_setting'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(80), nullable=False)
    rate = Column(Numeric(6, 4), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)


class PrintSettings(Base):
    """Receipt printer preferences (single row)."""

    __tablename__ = 'print_settings'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    paper_width = Column(Integer, nullable=False, default=80)  # mm
    paper_type = Column(String(20), nullable=False, default='thermal')
    footer_text = Column(Text, nullable=True)
    copies = Column(Integer, nullable=False, default=1)
    auto_print = Column(Boolean, nullable=False, default=False)


class DeviceSetting(Base):
    """Peripheral registration; connection_config is validated by settings_service."""

    __tablename__ = 'device_setting'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    device_type = Column(String(20), nullable=False)  # printer, cash_drawer, barcode_reader, scale
    device_name = Column(String(120), nullable=False)
    connection_type = Column(String(20), nullable=False)  # usb, network, serial, bluetooth
    connection_config = Column(JSON, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
