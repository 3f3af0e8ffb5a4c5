"""
Overall Rating Calculator.

Replaces the database trigger that used to fill in the overall rating on
insert/update. Every derived overall value in the engine comes from here.

Rules:
    - Any sub-rating present: mean of the present sub-ratings, rounded to one
      decimal using round-half-up.
    - No sub-rating present: the rater-supplied overall (same rounding), or None.

A supplied overall never overrides a derivable value; it is kept on the
rating only as an audit field.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ..constants import OVERALL_DECIMAL_PLACES

Number = Union[int, float, Decimal]


def round_half_up(value: Number, places: int) -> Decimal:
    """Round a number half-up to a fixed number of decimal places.

    Floats go through str() first so 4.45 rounds to 4.5 rather than to the
    binary neighbour 4.4.
    """
    exponent = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def calculate_overall(
    success: Optional[int],
    quality: Optional[int],
    communication: Optional[int],
    supplied: Optional[Number] = None,
) -> Optional[float]:
    """
    Compute a rating's overall value from its three sub-ratings.

    Args:
        success: Project success sub-rating or None
        quality: Quality sub-rating or None
        communication: Communication sub-rating or None
        supplied: Overall value supplied directly by the rater, if any

    Returns:
        Overall rating (one decimal) or None when nothing is available

    Examples:
        >>> calculate_overall(4, 5, 3)
        4.0
        >>> calculate_overall(5, None, 3)
        4.0
        >>> calculate_overall(None, None, None) is None
        True
    """
    present = [v for v in (success, quality, communication) if v is not None]
    if present:
        mean = Decimal(sum(present)) / Decimal(len(present))
        return float(round_half_up(mean, OVERALL_DECIMAL_PLACES))
    if supplied is not None:
        return float(round_half_up(supplied, OVERALL_DECIMAL_PLACES))
    return None


def overall_drifted(stored: Optional[Number], calculated: Optional[float]) -> bool:
    """True if a persisted overall disagrees with the calculated one.

    A stored value is compared after rounding to the overall precision, so
    4.0 stored as 4 or 4.00 is not drift. A missing stored value is drift
    only when a value can be calculated.
    """
    if calculated is None:
        return False
    if stored is None:
        return True
    return round_half_up(stored, OVERALL_DECIMAL_PLACES) != round_half_up(calculated, OVERALL_DECIMAL_PLACES)
