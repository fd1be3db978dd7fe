"""Rental price calculation."""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .exceptions import InvalidRangeError

CENTS = Decimal("0.01")

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    """Drop any time-of-day; pricing works on calendar dates only."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unsupported date: {value!r}")


def rental_days(start: DateLike, end: DateLike) -> int:
    """Whole days between start and end. Calendar dates, so this is already the ceiling."""
    return (_as_date(end) - _as_date(start)).days


def quote(start: DateLike, end: DateLike, daily_rate) -> Decimal:
    """
    Total price for renting from ``start`` to ``end`` at ``daily_rate``.

    Uses Decimal throughout; floats are converted via ``str`` so 49.99 stays
    49.99. Raises InvalidRangeError when the range covers no whole day.
    """
    days = rental_days(start, end)
    if days <= 0:
        raise InvalidRangeError()
    rate = daily_rate if isinstance(daily_rate, Decimal) else Decimal(str(daily_rate))
    if rate <= 0:
        raise InvalidRangeError("Daily rent price must be a positive number")
    return (rate * days).quantize(CENTS, rounding=ROUND_HALF_UP)
