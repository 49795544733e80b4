"""
Utilidades de formateo para tickets y respuestas.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional


def format_money(value: Union[int, float, Decimal, str, None], symbol: str = '$') -> str:
    """
    Monto con dos decimales y símbolo de moneda.

    Examples:
        format_money(12.5) -> "$12.50"
        format_money(Decimal('-3')) -> "-$3.00"
        format_money(None) -> "$0.00"
    """
    if value is None or value == "":
        value = 0
    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return f"{symbol}0.00"
    if num < 0:
        return f"-{symbol}{-num}"
    return f"{symbol}{num}"


def format_percent(rate: Union[Decimal, str, float, None]) -> str:
    """
    Tasa como porcentaje sin ceros de sobra.

    Examples:
        format_percent(Decimal('0.16')) -> "16%"
        format_percent('0.105') -> "10.5%"
    """
    if rate is None or rate == "":
        return "0%"
    pct = (Decimal(str(rate)) * 100).normalize()
    if pct == pct.to_integral_value():
        pct = pct.quantize(Decimal(1))
    return f"{pct}%"


def format_datetime(value: Optional[Union[datetime, date]]) -> str:
    """dd/mm/yyyy HH:MM, o solo la fecha para objetos date."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")
