from datetime import date, datetime, time
from typing import Any, Callable, Iterator, Optional, Tuple

from bitlytics.core.exceptions import MalformedTimeSpecError
from bitlytics.domain.models import Context, GranularityRequest, TimeBounds
from bitlytics.metrics.bucketing import (
    bucket_end,
    bucket_start,
    enumerate_bucket_starts,
    shift,
    to_local,
)
from bitlytics.metrics.granularity import GranularityCatalog

# "N units ago until now"
_RELATIVE_KEYWORDS = {"hour", "day", "week", "month", "year"}

# Calendar aligned spans: (unit, how many units back)
_CALENDAR_KEYWORDS = {
    "today": ("day", 0),
    "yesterday": ("day", 1),
    "this_week": ("week", 0),
    "last_week": ("week", 1),
    "this_month": ("month", 0),
    "last_month": ("month", 1),
    "this_year": ("year", 0),
    "last_year": ("year", 1),
}


class TimeFrame:
    """A concrete `[from, to]` interval at one granularity.

    Accepted time specifications:
        - keyword: "hour", "day", "week", "month", "year" (one unit ago until
          now), "today", "yesterday", "this_week", "last_week", "this_month",
          "last_month", "this_year", "last_year"; any other keyword means one
          default granularity step ago until now.
        - `TimeBounds` or a mapping with "from"/"to" (strings are parsed as
          ISO timestamps, a missing "from" is defaulted as above, a missing
          "to" is now).
        - a (from, to) tuple or list, equivalent to the mapping form.
        - a single `datetime` or `date`, expanded to that calendar day.
    """

    def __init__(
        self,
        context: Context,
        time_spec: Any,
        catalog: GranularityCatalog,
        granularity: GranularityRequest = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.context = context
        self.catalog = catalog
        self._now = now or datetime.now
        self.granularity = catalog.first(context, granularity)
        self.from_, self.to = self._resolve(time_spec)
        if self.from_ > self.to:
            raise MalformedTimeSpecError(
                f"Time frame starts after it ends: {self.from_} > {self.to}"
            )

    @property
    def step(self) -> str:
        return self.catalog.spec(self.granularity).step

    def splat(self) -> Iterator[datetime]:
        """Bucket instants covering the frame, recomputed on every call."""
        return enumerate_bucket_starts(self.from_, self.to, self.step)

    def __iter__(self) -> Iterator[datetime]:
        return self.splat()

    def __repr__(self) -> str:
        return f"TimeFrame({self.from_!r}, {self.to!r}, {self.granularity!r})"

    def _resolve(self, time_spec: Any) -> Tuple[datetime, datetime]:
        if isinstance(time_spec, str):
            return self._from_keyword(time_spec)
        if isinstance(time_spec, TimeBounds):
            return self._from_bounds(time_spec.from_, time_spec.to)
        if isinstance(time_spec, dict):
            return self._from_bounds(
                time_spec.get("from", time_spec.get("from_")), time_spec.get("to")
            )
        if isinstance(time_spec, (tuple, list)) and len(time_spec) == 2:
            return self._from_bounds(time_spec[0], time_spec[1])
        if isinstance(time_spec, datetime):
            day = to_local(time_spec)
            return bucket_start(day, "day"), bucket_end(day, "day")
        if isinstance(time_spec, date):
            day = datetime.combine(time_spec, time.min)
            return day, bucket_end(day, "day")
        raise MalformedTimeSpecError(
            "TimeFrame should be initialized with a keyword, bounds, "
            f"a (from, to) pair or a datetime, got {type(time_spec).__name__}"
        )

    def _from_keyword(self, keyword: str) -> Tuple[datetime, datetime]:
        now = self._now()
        if keyword in _RELATIVE_KEYWORDS:
            return shift(now, keyword, -1), now
        if keyword in _CALENDAR_KEYWORDS:
            unit, back = _CALENDAR_KEYWORDS[keyword]
            if back == 0:
                return bucket_start(now, unit), now
            past = shift(now, unit, -back)
            return bucket_start(past, unit), bucket_end(past, unit)
        return self._default_from(now), now

    def _from_bounds(self, from_: Any, to: Any) -> Tuple[datetime, datetime]:
        now = self._now()
        start = self._parse(from_)
        end = self._parse(to)
        return (
            start if start is not None else self._default_from(now),
            end if end is not None else now,
        )

    def _default_from(self, now: datetime) -> datetime:
        default = self.catalog.default_for(self.context)[0]
        return shift(now, self.catalog.spec(default).step, -1)

    @staticmethod
    def _parse(value: Any) -> Optional[datetime]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return to_local(value)
        if isinstance(value, date):
            return datetime.combine(value, time.min)
        if isinstance(value, str):
            try:
                return to_local(datetime.fromisoformat(value))
            except ValueError as e:
                raise MalformedTimeSpecError(f"Unparseable timestamp: {value!r}") from e
        raise MalformedTimeSpecError(
            f"Time frame bound must be a datetime or string, got {type(value).__name__}"
        )
