class BitlyticsError(Exception):
    """Base class for errors raised by bitlytics itself (not by Redis)."""


class KeyRangeError(BitlyticsError):
    """Too many keys for a single script invocation.

    Lua's `unpack` is bounded by LUAI_MAXCSTACK (8000 by default); raising
    the limit requires a custom Redis build, so the time span or granularity
    of the request has to shrink instead.
    """

    def __init__(self, limit: int = 8000):
        super().__init__(f"Too many keys (max. {limit} keys defined by LUAI_MAXCSTACK)")
        self.limit = limit


class MalformedTimeSpecError(BitlyticsError, TypeError):
    """A time specification has an unsupported shape or inverted bounds."""


class InvalidOperationError(BitlyticsError, ValueError):
    """Unknown set operator or wrong number of operands."""
