from decimal import Decimal, ROUND_HALF_UP


def round_currency(value: float) -> float:
    """Round to whole currency units, halves away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
