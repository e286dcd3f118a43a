"""Calendar arithmetic for granularity steps.

Buckets are calendar aligned: a daily bucket starts at local midnight, a
weekly bucket on ISO Monday, a monthly bucket on the first of the month.
Month and year steps clamp the day of month instead of adding a fixed number
of seconds, so no calendar month is ever skipped.
"""

import calendar
from datetime import datetime, timedelta
from typing import Iterator

_FIXED_STEPS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}
_MONTH_STEPS = {"month": 1, "year": 12}


def to_local(moment: datetime) -> datetime:
    """Zoned instants become naive local time, the zone keys are labelled in."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def add_months(moment: datetime, months: int) -> datetime:
    total = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def shift(moment: datetime, unit: str, count: int = 1) -> datetime:
    """Move `moment` by `count` steps of `unit` (negative goes back)."""
    if unit in _FIXED_STEPS:
        return moment + _FIXED_STEPS[unit] * count
    if unit in _MONTH_STEPS:
        return add_months(moment, _MONTH_STEPS[unit] * count)
    raise ValueError(f"Unknown step unit: {unit}")


def bucket_start(moment: datetime, unit: str) -> datetime:
    if unit == "minute":
        return moment.replace(second=0, microsecond=0)
    if unit == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "day":
        return day
    if unit == "week":
        return day - timedelta(days=day.weekday())
    if unit == "month":
        return day.replace(day=1)
    if unit == "year":
        return day.replace(month=1, day=1)
    raise ValueError(f"Unknown step unit: {unit}")


def bucket_end(moment: datetime, unit: str) -> datetime:
    """Last representable instant of the bucket containing `moment`."""
    return shift(bucket_start(moment, unit), unit) - timedelta(microseconds=1)


def enumerate_bucket_starts(
    start: datetime, end: datetime, unit: str
) -> Iterator[datetime]:
    """Yield `start`, then every bucket boundary after it, up to `end`.

    Successive instants are computed from the aligned first bucket rather
    than accumulated, so month clamping never drifts.
    """
    if start > end:
        return
    yield start
    first = bucket_start(start, unit)
    step = 1
    moment = shift(first, unit, step)
    while moment <= end:
        yield moment
        step += 1
        moment = shift(first, unit, step)
