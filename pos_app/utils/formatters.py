"""
Formateo de montos para mensajes al cliente.
Estilo costarricense: espacio de no separación para miles, coma decimal.
"""
from decimal import Decimal, InvalidOperation
from typing import Union, Optional

THOUSANDS_SEPARATOR = '\u00a0'
CURRENCY_SYMBOL = '₡'

Numeric = Union[int, float, Decimal, str, None]


def num_cr(value: Numeric, decimals: Optional[int] = None) -> str:
    """
    Formatea un número en estilo costarricense.

    Examples:
        num_cr(1500) -> "1 500"
        num_cr(1500.5) -> "1 500,5"
        num_cr(185.00) -> "185"
        num_cr(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value).replace(",", "."))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    if not num.is_finite():
        return "-"

    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    integer_part, _, decimal_part = f"{abs(num):f}".partition('.')
    decimal_part = decimal_part.rstrip('0')

    grouped = f"{int(integer_part):,}".replace(',', THOUSANDS_SEPARATOR)
    sign = '-' if num < 0 else ''

    if decimal_part:
        return f"{sign}{grouped},{decimal_part}"
    return f"{sign}{grouped}"


def money_crc(value: Numeric) -> str:
    """Monto en colones: money_crc(2000) -> "₡2 000"."""
    formatted = num_cr(value)
    if formatted == "-":
        return formatted
    return f"{CURRENCY_SYMBOL}{formatted}"


def percent_cr(value: Numeric) -> str:
    """Porcentaje sin decimales innecesarios: percent_cr(Decimal('7.5')) -> "7,5%"."""
    formatted = num_cr(value)
    if formatted == "-":
        return formatted
    return f"{formatted}%"
