"""
Averaging helpers shared by response models and the metrics aggregator.

Every average in surveylink is taken over present values only and quantized
to two decimals with ROUND_HALF_UP. An average over no values is None.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

Number = Union[int, float, Decimal]

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 stays 0.1 rather than its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def round_half_up(value: Number) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def average_present(values: Iterable[Optional[Number]]) -> Optional[Decimal]:
    """Average of the non-None values, or None when there are none."""
    present = [to_decimal(v) for v in values if v is not None]
    if not present:
        return None
    return round_half_up(sum(present, Decimal(0)) / len(present))


def difference(after: Optional[Number], before: Optional[Number]) -> Optional[Decimal]:
    if after is None or before is None:
        return None
    return to_decimal(after) - to_decimal(before)
