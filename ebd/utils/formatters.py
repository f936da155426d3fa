"""
Formatting helpers for messages (Brazilian style).
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union, Optional

Number = Union[int, float, Decimal, str, None]


def num_br(value: Number, decimals: int = 2) -> str:
    """
    Format a number with '.' as thousands separator and ',' as decimal separator.

    Examples:
        num_br(1500) -> "1.500,00"
        num_br(1234.5) -> "1.234,50"
        num_br(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    num = num.quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_UP)
    sign = '-' if num < 0 else ''
    integer_part, _, decimal_part = f"{abs(num):f}".partition('.')

    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)

    formatted = '.'.join(groups)
    if decimals:
        formatted = f"{formatted},{decimal_part}"
    return f"{sign}{formatted}"


def money_br(value: Number) -> str:
    """money_br(1234.5) -> "R$ 1.234,50"."""
    formatted = num_br(value, 2)
    return formatted if formatted == "-" else f"R$ {formatted}"


def pct_br(value: Number, decimals: Optional[int] = None) -> str:
    """pct_br(12.5) -> "12,5%"; integral values drop the decimals."""
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    if decimals is None:
        decimals = 0 if num == num.to_integral_value() else 2
    text = num_br(num, decimals)
    if ',' in text and decimals:
        text = text.rstrip('0').rstrip(',')
    return f"{text}%"
