"""
Peso arithmetic helpers.

Chilean pesos have no minor unit, so every amount comparison made by the
matching engine happens on whole-peso integers.
"""

from decimal import ROUND_HALF_UP, Decimal


def amount_key(value: Decimal | int | float | None) -> int:
    """Round an amount to whole pesos (half-up)."""
    if value is None:
        return 0
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_pesos(value: Decimal) -> Decimal:
    """Round a computed amount to whole pesos, keeping Decimal."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def format_clp(value: Decimal | int | float | None) -> str:
    """Format an amount the way Chilean documents print it: $1.234.567."""
    key = amount_key(value)
    sign = "-" if key < 0 else ""
    return f"{sign}${abs(key):,}".replace(",", ".")
