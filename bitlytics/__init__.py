"""Time-bucketed counters and presence bitmaps on Redis, with bitmap algebra."""

from .core.config import Settings, settings
from .core.exceptions import (
    BitlyticsError,
    InvalidOperationError,
    KeyRangeError,
    MalformedTimeSpecError,
)
from .domain.models import (
    Context,
    CountOptions,
    GranularityRange,
    QueryOptions,
    TimeBounds,
    TrackOptions,
)
from .domain.operation import Operation, and_, minus, not_, or_, xor
from .domain.query import Query
from .services.analytics import Analytics

__all__ = [
    "Analytics",
    "Settings",
    "settings",
    "Query",
    "Operation",
    "and_",
    "or_",
    "xor",
    "not_",
    "minus",
    "Context",
    "CountOptions",
    "TrackOptions",
    "QueryOptions",
    "TimeBounds",
    "GranularityRange",
    "BitlyticsError",
    "KeyRangeError",
    "MalformedTimeSpecError",
    "InvalidOperationError",
]
