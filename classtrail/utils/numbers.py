"""Rounding helpers shared by XP, percentage and score computations."""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float, digits: int = 0):
    """Round like a person would (2.5 -> 3), not like `round` (2.5 -> 2).

    Returns an int when `digits` is 0, a float otherwise.
    """
    exponent = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def percentage(part: int, total: int) -> int:
    """Whole-number percentage of part/total, 0 when total is 0."""
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)
