"""
Settings readers (company, tax, printing, devices).

Database rows win; when a table is empty the values come from app config.
Company, tax and print settings are cached for CACHE_SETTINGS_TTL seconds.
"""
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from flask import current_app, has_app_context

from pharmapos.exceptions import BusinessLogicError
from pharmapos.models import CompanySettings, DeviceSetting, PrintSettings, TaxSetting
from pharmapos.services.cache_service import get_cache
from pharmapos.services.cart import parse_tax_rate

logger = logging.getLogger(__name__)

CACHE_MODULE = 'settings'

DEFAULTS = {
    'BUSINESS_NAME': 'FARMACIA',
    'TAX_RATE': '0.16',
    'BUSINESS_CURRENCY_SYMBOL': '$',
    'RECEIPT_PAPER_WIDTH_MM': 80,
    'RECEIPT_FOOTER': '¡Gracias por su compra!',
}


def _config(key, default=None):
    if default is None:
        default = DEFAULTS.get(key)
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _cached(key: str, loader):
    cache = get_cache()
    if cache is None:
        return loader()
    return cache.get_or_set(CACHE_MODULE, key, loader, ttl=_config('CACHE_SETTINGS_TTL', 300))


def invalidate_settings() -> None:
    cache = get_cache()
    if cache is not None:
        cache.invalidate(CACHE_MODULE)


# Company / tax / print


def get_company_info(session) -> Dict[str, Any]:
    """Company identity as a plain dict (the shape receipts consume)."""
    def load():
        row = session.query(CompanySettings).order_by(CompanySettings.id).first()
        if row is None:
            return {
                'name': _config('BUSINESS_NAME'),
                'legal_name': _config('BUSINESS_LEGAL_NAME', ''),
                'tax_id': _config('BUSINESS_TAX_ID', ''),
                'address': _config('BUSINESS_ADDRESS', ''),
                'phone': _config('BUSINESS_PHONE', ''),
                'email': _config('BUSINESS_EMAIL', ''),
                'health_license': '',
                'currency_symbol': _config('BUSINESS_CURRENCY_SYMBOL'),
            }
        return {
            'name': row.name,
            'legal_name': row.legal_name or '',
            'tax_id': row.tax_id or '',
            'address': row.address or '',
            'phone': row.phone or '',
            'email': row.email or '',
            'health_license': row.health_license or '',
            'currency_symbol': row.currency_symbol or _config('BUSINESS_CURRENCY_SYMBOL'),
        }
    return _cached('company', load)


def update_company_info(session, **fields) -> CompanySettings:
    allowed = {'name', 'legal_name', 'tax_id', 'address', 'phone', 'email', 'health_license', 'currency_symbol'}
    unknown = set(fields) - allowed
    if unknown:
        raise BusinessLogicError(f"Campos desconocidos: {', '.join(sorted(unknown))}")

    row = session.query(CompanySettings).order_by(CompanySettings.id).first()
    if row is None:
        row = CompanySettings(name=fields.get('name') or _config('BUSINESS_NAME'))
        session.add(row)
    for key, value in fields.items():
        setattr(row, key, value)
    if not row.name:
        raise BusinessLogicError('El nombre de la empresa es obligatorio')
    session.commit()
    invalidate_settings()
    logger.info("Company settings updated: %s", ', '.join(sorted(fields)))
    return row


def get_tax_rate(session) -> Decimal:
    """Rate of the active default TaxSetting, else any active one, else TAX_RATE from config."""
    def load():
        row = (session.query(TaxSetting)
               .filter(TaxSetting.active.is_(True))
               .order_by(TaxSetting.is_default.desc(), TaxSetting.id)
               .first())
        if row is not None:
            return Decimal(str(row.rate))
        return parse_tax_rate(_config('TAX_RATE'))
    return _cached('tax_rate', load)


def get_print_settings(session) -> Dict[str, Any]:
    def load():
        row = session.query(PrintSettings).order_by(PrintSettings.id).first()
        if row is None:
            return {
                'paper_width': int(_config('RECEIPT_PAPER_WIDTH_MM')),
                'paper_type': 'thermal',
                'footer_text': _config('RECEIPT_FOOTER'),
                'copies': 1,
                'auto_print': False,
            }
        return {
            'paper_width': row.paper_width,
            'paper_type': row.paper_type,
            'footer_text': row.footer_text if row.footer_text is not None else _config('RECEIPT_FOOTER'),
            'copies': row.copies,
            'auto_print': bool(row.auto_print),
        }
    return _cached('print', load)


# Device connections


@dataclass(frozen=True)
class UsbConnection:
    vendor_id: int
    product_id: int
    kind: str = 'usb'


@dataclass(frozen=True)
class NetworkConnection:
    host: str
    port: int = 9100
    kind: str = 'network'


@dataclass(frozen=True)
class SerialConnection:
    port: str
    baudrate: int = 9600
    kind: str = 'serial'


@dataclass(frozen=True)
class BluetoothConnection:
    address: str
    kind: str = 'bluetooth'


Connection = Union[UsbConnection, NetworkConnection, SerialConnection, BluetoothConnection]


def _require(config: Mapping[str, Any], kind: str, field_name: str):
    value = config.get(field_name)
    if value in (None, ''):
        raise BusinessLogicError(f"La conexión {kind} requiere '{field_name}'")
    return value


def _as_int(value, kind: str, field_name: str, base: int = 10) -> int:
    if isinstance(value, bool):
        raise BusinessLogicError(f"'{field_name}' inválido para conexión {kind}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), base)
    except ValueError:
        raise BusinessLogicError(f"'{field_name}' inválido para conexión {kind}: {value!r}")


def parse_connection(kind: str, config: Optional[Mapping[str, Any]]) -> Connection:
    """
    Build the typed connection for a device.

    USB ids accept ints or hex strings ("0x04b8" or "04b8").
    """
    config = config or {}
    kind = (kind or '').strip().lower()

    if kind == 'usb':
        return UsbConnection(
            vendor_id=_as_int(_require(config, kind, 'vendor_id'), kind, 'vendor_id', 16),
            product_id=_as_int(_require(config, kind, 'product_id'), kind, 'product_id', 16),
        )
    if kind == 'network':
        port = _as_int(config.get('port', 9100), kind, 'port')
        if not 0 < port < 65536:
            raise BusinessLogicError(f'Puerto fuera de rango: {port}')
        return NetworkConnection(host=str(_require(config, kind, 'host')), port=port)
    if kind == 'serial':
        baudrate = _as_int(config.get('baudrate', 9600), kind, 'baudrate')
        if baudrate <= 0:
            raise BusinessLogicError(f'Baudrate inválido: {baudrate}')
        return SerialConnection(port=str(_require(config, kind, 'port')), baudrate=baudrate)
    if kind == 'bluetooth':
        return BluetoothConnection(address=str(_require(config, kind, 'address')))

    raise BusinessLogicError(f'Tipo de conexión desconocido: {kind or "(vacío)"}')


def connection_to_dict(connection: Connection) -> Dict[str, Any]:
    data = asdict(connection)
    data.pop('kind')
    return data


def get_default_device(session, device_type: str) -> Optional[Tuple[DeviceSetting, Connection]]:
    """The default active device of a type with its parsed connection."""
    device = (session.query(DeviceSetting)
              .filter(DeviceSetting.device_type == device_type, DeviceSetting.active.is_(True))
              .order_by(DeviceSetting.is_default.desc(), DeviceSetting.id)
              .first())
    if device is None:
        return None
    return device, parse_connection(device.connection_type, device.connection_config)
