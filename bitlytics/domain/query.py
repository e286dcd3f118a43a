import json
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bitlytics.core.logger import get_logger
from bitlytics.domain.models import Context, QueryOptions
from bitlytics.domain.operation import Node
from bitlytics.metrics.key_codec import StorageKey

if TYPE_CHECKING:
    from bitlytics.services.analytics import Analytics

logger = get_logger("bitlytics.query")

_COUNTER_FIELDS = ("counts", "plot_counts", "realize_counts")
_TRACKER_FIELDS = ("tracks", "exists", "plot_tracks", "realize_tracks")


class Query(Node):
    """Leaf binding an event and a time specification to lazy results.

    Every result is computed on first access and cached until `reset()`.
    Tracker results are read from one temporary key holding the union of all
    tracker bitmaps of the time frame; the query owns that key.
    """

    def __init__(
        self,
        engine: "Analytics",
        event: str,
        time_spec: Any,
        options: Optional[QueryOptions] = None,
    ):
        super().__init__(engine)
        self.event = event
        self.time_spec = time_spec
        self.options = options or QueryOptions()
        self._cache: Dict[str, Any] = {}
        self._track_bits: Optional[str] = None

    def __repr__(self) -> str:
        return f"Query({self.event!r}, {self.time_spec!r}, {self.options!r})"

    @property
    def is_leaf(self) -> bool:
        return True

    def counts(self) -> int:
        if "counts" not in self._cache:
            result = self.engine.dispatch.invoke(
                "counts", self.realize_counts(), {"bucketized": self._bucketized}
            )
            self._cache["counts"] = _total(result)
        return self._cache["counts"]

    def track_bits(self) -> str:
        if self._track_bits is None:
            # Resolve keys first so an oversized frame claims no temporary key
            keys = self.realize_tracks()
            self._track_bits = self._combine("OR", keys)
        return self._track_bits

    def tracks(self) -> int:
        if "tracks" not in self._cache:
            key = self.track_bits()
            self._cache["tracks"] = (
                self.engine.connection.execute(lambda r: r.bitcount(key)) or 0
            )
        return self._cache["tracks"]

    def exists(self) -> Optional[bool]:
        """Whether the query's object id is tracked; None without an id filter."""
        if self.options.id is None:
            return None
        if "exists" not in self._cache:
            key, id = self.track_bits(), self.options.id
            self._cache["exists"] = (
                self.engine.connection.execute(lambda r: r.getbit(key, id)) == 1
            )
        return self._cache["exists"]

    def plot_counts(self) -> Optional[Dict[datetime, int]]:
        if self._cache.get("plot_counts") is None:
            result = self.engine.dispatch.invoke(
                "plot_counts", self.realize_counts(), {"bucketized": self._bucketized}
            )
            self._cache["plot_counts"] = self._format_plot(Context.COUNTER, result)
        return self._cache["plot_counts"]

    def plot_tracks(self) -> Optional[Dict[datetime, int]]:
        if self._cache.get("plot_tracks") is None:
            result = self.engine.dispatch.invoke("plot_tracks", self.realize_tracks(), {})
            self._cache["plot_tracks"] = self._format_plot(Context.TRACKER, result)
        return self._cache["plot_tracks"]

    def realize_counts(self) -> List[StorageKey]:
        if "realize_counts" not in self._cache:
            self._cache["realize_counts"] = self._timeframed(Context.COUNTER)
        return self._cache["realize_counts"]

    def realize_tracks(self) -> List[StorageKey]:
        if "realize_tracks" not in self._cache:
            self._cache["realize_tracks"] = self._timeframed(Context.TRACKER)
        return self._cache["realize_tracks"]

    def reset(self, scope: Optional[str] = None) -> bool:
        """Forget cached results.

        `scope` may name one field, "counter" or "tracker" for a group, or be
        None (or "tree") to clear everything and delete all owned keys.
        """
        if scope in ("counts", "plot_counts", "plot_tracks", "realize_counts", "realize_tracks"):
            self._cache.pop(scope, None)
        elif scope in ("tracks", "exists"):
            self._cache.pop(scope, None)
            self._reset_track_bits()
        elif scope == "counter":
            for field in _COUNTER_FIELDS:
                self._cache.pop(field, None)
        elif scope == "tracker":
            for field in _TRACKER_FIELDS:
                self._cache.pop(field, None)
            self._reset_track_bits()
        elif scope in (None, "tree"):
            self._cache.clear()
            self._track_bits = None
            self._release(list(self._namespaces))
        else:
            raise ValueError(f"Unknown reset scope: {scope}")
        return True

    @property
    def _bucketized(self) -> bool:
        return self.engine.codec.bucketize(Context.COUNTER, self.options.id)

    def _timeframed(self, context: Context) -> List[StorageKey]:
        # Trackers are never split by id; the id only filters `exists`
        id = self.options.id if context is Context.COUNTER else None
        return self.engine.codec.timeframed(
            context,
            self.event,
            self.time_spec,
            granularity=self.options.granularity,
            id=id,
            now=self.engine.now,
        )

    def _reset_track_bits(self) -> None:
        self._release([self._track_bits])
        self._track_bits = None

    def _format_plot(self, context: Context, result: Any) -> Optional[Dict[datetime, int]]:
        try:
            raw = json.loads(result)
        except (TypeError, ValueError):
            logger.debug("Unparseable plot result", extra={"event": self.event})
            return None
        if not isinstance(raw, dict):
            return None
        codec = self.engine.codec
        granularity = codec.catalog.first(context, self.options.granularity)
        # Counter keys filtered by id end with the id (or its bucket)
        position = -2 if context is Context.COUNTER and self.options.id is not None else -1
        plot: Dict[datetime, int] = {}
        try:
            for key, value in raw.items():
                label = key.split(codec.separator)[position]
                plot[codec.parse_label(granularity, label)] = int(value)
        except (IndexError, ValueError):
            logger.debug("Unparseable plot key", extra={"event": self.event})
            return None
        return plot


def _total(result: Any) -> int:
    if result is None:
        return 0
    if isinstance(result, (list, tuple)):
        return sum(int(value or 0) for value in result)
    return int(result)
