"""
Money helpers.

Catalog prices are stored as floats; all arithmetic on amounts goes through
Decimal and is rounded half-up to cents before it reaches the gateway.
"""
from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

CENTS = Decimal("0.01")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_string_money(x) -> str:
    """Format for the gateway: always two decimals, e.g. "100.00"."""
    return str(round_money(x))


def same_amount(a, b) -> bool:
    return round_money(a) == round_money(b)
