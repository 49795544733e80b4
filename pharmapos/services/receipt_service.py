"""
Receipt (ticket) text rendering.

Pure functions: they take already-loaded objects and return a string sized
for the printer's paper width. Printing happens in printer_service.
"""
import textwrap
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from pharmapos.models import PAYMENT_METHOD_LABELS, normalize_payment_method
from pharmapos.utils.formatters import format_datetime, format_money, format_percent

DEFAULT_FOOTER = '¡Gracias por su compra!'
DEFAULT_CLIENT = 'CONSUMIDOR FINAL'
DEFAULT_CASHIER = 'Sistema'

# Characters per line on common thermal rolls (Font A)
COLUMNS_BY_WIDTH = {58: 32, 80: 48}

# Below this the item table does not fit on one line per item
_WIDE_LAYOUT_MIN_COLUMNS = 40


@dataclass
class ReceiptOptions:
    paper_width_mm: int = 80
    footer: Optional[str] = DEFAULT_FOOTER
    cashier_name: Optional[str] = None
    amount_received: Optional[Decimal] = None
    change: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None


def columns_for_width(paper_width_mm: int) -> int:
    """Printable columns for a paper width; unknown widths scale from 80mm = 48."""
    if paper_width_mm in COLUMNS_BY_WIDTH:
        return COLUMNS_BY_WIDTH[paper_width_mm]
    return max(int(paper_width_mm * 48 / 80), 24)


def _get(obj: Any, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _center(text: str, width: int) -> List[str]:
    return [line.center(width).rstrip() for line in textwrap.wrap(text, width)] if text else []


def _pair(label: str, value: str, width: int) -> str:
    space = max(width - len(label) - len(value), 1)
    return f'{label}{" " * space}{value}'


def _item_name(item) -> str:
    name = _get(item, 'product_name')
    if not name:
        product = _get(item, 'product')
        name = _get(product, 'name') or f"Producto {_get(item, 'product_id')}"
    return name


def _item_lines(items: Iterable, width: int, symbol: str) -> List[str]:
    lines = []
    if width >= _WIDE_LAYOUT_MIN_COLUMNS:
        qty_w, price_w, total_w = 4, 9, 10
        name_w = width - qty_w - price_w - total_w - 3
        lines.append(f"{'PRODUCTO':<{name_w}} {'CANT':>{qty_w}} {'PRECIO':>{price_w}} {'TOTAL':>{total_w}}")
        lines.append('-' * width)
        for item in items:
            name = _item_name(item)[:name_w]
            lines.append(
                f"{name:<{name_w}} {_get(item, 'quantity'):>{qty_w}} "
                f"{format_money(_get(item, 'unit_price'), symbol):>{price_w}} "
                f"{format_money(_get(item, 'total_price'), symbol):>{total_w}}"
            )
            discount = _get(item, 'discount_amount')
            if discount:
                lines.append(f"  Desc. -{format_money(discount, symbol)}")
    else:
        lines.append('PRODUCTO')
        lines.append('-' * width)
        for item in items:
            lines.append(_item_name(item)[:width])
            detail = f"  {_get(item, 'quantity')} x {format_money(_get(item, 'unit_price'), symbol)}"
            lines.append(_pair(detail, format_money(_get(item, 'total_price'), symbol), width))
            discount = _get(item, 'discount_amount')
            if discount:
                lines.append(f"  Desc. -{format_money(discount, symbol)}")
    return lines


def _header(company_info: Mapping[str, Any], width: int) -> List[str]:
    lines = _center((company_info.get('name') or '').upper(), width)
    lines += _center(company_info.get('legal_name') or '', width)
    lines += _center(company_info.get('address') or '', width)
    if company_info.get('phone'):
        lines += _center(f"Tel: {company_info['phone']}", width)
    if company_info.get('tax_id'):
        lines += _center(f"RUC: {company_info['tax_id']}", width)
    if company_info.get('health_license'):
        lines += _center(f"Lic. Sanitaria: {company_info['health_license']}", width)
    return lines


def format_receipt(sale, client, company_info: Mapping[str, Any],
                   options: Optional[ReceiptOptions] = None, items: Optional[Iterable] = None) -> str:
    """
    Render the ticket for a completed sale.

    `items` defaults to sale.items; a checkout can pass its cart lines
    instead. `client` may be None (walk-in customer).
    """
    options = options or ReceiptOptions()
    width = columns_for_width(options.paper_width_mm)
    symbol = company_info.get('currency_symbol') or '$'
    items = list(items if items is not None else (_get(sale, 'items') or []))

    lines = _header(company_info, width)
    lines.append('=' * width)
    lines.append(f"FACTURA: {sale.sale_number}")
    lines.append(f"FECHA: {format_datetime(sale.created_at)}")
    lines.append(f"CAJERO: {options.cashier_name or DEFAULT_CASHIER}")
    lines.append(f"CLIENTE: {_get(client, 'name') or DEFAULT_CLIENT}")
    identification = _get(client, 'identification_number')
    if identification:
        lines.append(f"C.I./RUC: {identification}")
    lines.append('=' * width)

    lines += _item_lines(items, width, symbol)
    lines.append('-' * width)

    lines.append(_pair('SUBTOTAL:', format_money(sale.subtotal_amount, symbol), width))
    if sale.discount_amount:
        lines.append(_pair('DESCUENTO:', f"-{format_money(sale.discount_amount, symbol)}", width))
    tax_label = f"IVA ({format_percent(options.tax_rate)}):" if options.tax_rate is not None else 'IVA:'
    lines.append(_pair(tax_label, format_money(sale.tax_amount, symbol), width))
    lines.append(_pair('TOTAL:', format_money(sale.total_amount, symbol), width))
    lines.append('')

    method = normalize_payment_method(sale.payment_method)
    label = PAYMENT_METHOD_LABELS[method] if method else (sale.payment_method or '').upper()
    lines.append(f"MÉTODO DE PAGO: {label}")
    if options.amount_received is not None:
        lines.append(_pair('RECIBIDO:', format_money(options.amount_received, symbol), width))
        lines.append(_pair('CAMBIO:', format_money(options.change or 0, symbol), width))

    points = _get(sale, 'points_redeemed')
    if points:
        lines.append(f"PUNTOS CANJEADOS: {points}")
    loyalty_points = _get(client, 'loyalty_points')
    if loyalty_points is not None:
        lines.append(f"PUNTOS DISPONIBLES: {loyalty_points}")

    if options.footer:
        lines.append('')
        for footer_line in options.footer.splitlines():
            lines += _center(footer_line, width)

    return '\n'.join(lines) + '\n'


def format_cash_close(register, company_info: Mapping[str, Any],
                      options: Optional[ReceiptOptions] = None) -> str:
    """Closing ticket for a cash register session."""
    options = options or ReceiptOptions()
    width = columns_for_width(options.paper_width_mm)
    symbol = company_info.get('currency_symbol') or '$'

    lines = _header(company_info, width)
    lines.append('=' * width)
    lines += _center('CIERRE DE CAJA', width)
    lines.append('=' * width)
    lines.append(f"CAJA: {register.register_name}")
    lines.append(f"CAJERO: {options.cashier_name or DEFAULT_CASHIER}")
    lines.append(f"APERTURA: {format_datetime(register.opened_at)}")
    lines.append(f"CIERRE: {format_datetime(register.closed_at)}")
    lines.append('-' * width)
    lines.append(_pair('MONTO DE APERTURA:', format_money(register.opening_amount, symbol), width))
    lines.append(_pair('VENTAS TOTALES:', format_money(register.total_sales, symbol), width))
    lines.append(_pair('EFECTIVO:', format_money(register.total_cash, symbol), width))
    lines.append(_pair('TARJETA:', format_money(register.total_card, symbol), width))
    lines.append(_pair('OTROS:', format_money(register.total_other, symbol), width))
    lines.append(_pair('TRANSACCIONES:', str(register.total_transactions or 0), width))
    lines.append('-' * width)
    lines.append(_pair('EFECTIVO ESPERADO:', format_money(register.expected_cash, symbol), width))
    if register.closing_amount is not None:
        lines.append(_pair('EFECTIVO CONTADO:', format_money(register.closing_amount, symbol), width))
        difference = register.difference
        if difference:
            lines.append(_pair('DIFERENCIA:', format_money(difference, symbol), width))
        else:
            lines.append('SIN DIFERENCIAS')
    if register.notes:
        lines.append('')
        lines += textwrap.wrap(f"Notas: {register.notes}", width)

    return '\n'.join(lines) + '\n'
