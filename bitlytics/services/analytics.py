from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import redis

from bitlytics.core.config import Settings
from bitlytics.core.config import settings as default_settings
from bitlytics.core.logger import get_logger
from bitlytics.domain.models import (
    CountOptions,
    GranularityRequest,
    QueryOptions,
    TrackOptions,
)
from bitlytics.domain.query import Query
from bitlytics.infrastructure.redis.client import RedisConnection
from bitlytics.infrastructure.redis.repository import CounterStore, TrackerStore
from bitlytics.infrastructure.redis.script import ScriptDispatch
from bitlytics.metrics.granularity import GranularityCatalog
from bitlytics.metrics.key_codec import KeyCodec

logger = get_logger("bitlytics.analytics")


class Analytics:
    """Entry point wiring configuration, Redis access and key naming.

    Usage:
        analytics = Analytics()
        analytics.count("products:1:views", id=42)
        analytics.track("logins", 42)

        with analytics.analyze("logins", "last_week") as a, \\
                analytics.analyze("logins", "this_week") as b:
            returning = (a & b).tracks()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[redis.Redis] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or default_settings
        self.now = now
        self.connection = RedisConnection(self.config, client)
        self.catalog = GranularityCatalog(self.config)
        self.codec = KeyCodec(self.connection, self.config, self.catalog)
        self.dispatch = ScriptDispatch(self.connection)
        self.counters = CounterStore(self.connection, self.codec)
        self.trackers = TrackerStore(self.connection, self.codec)

    def count(
        self,
        event: Union[str, CountOptions],
        id: Optional[int] = None,
        granularity: GranularityRequest = None,
        past: Optional[datetime] = None,
        expiration_for: Optional[Dict[str, int]] = None,
    ) -> List[str]:
        """Increment the counters of `event`; returns the granularities written."""
        if isinstance(event, CountOptions):
            options = event
        else:
            options = CountOptions(
                event=event,
                id=id,
                granularity=granularity,
                past=past,
                expiration_for=expiration_for or {},
            )
        return self.counters.increment(options)

    def track(
        self,
        event: Union[str, TrackOptions],
        id: Optional[int] = None,
        granularity: GranularityRequest = None,
        past: Optional[datetime] = None,
        expiration_for: Optional[Dict[str, int]] = None,
    ) -> List[str]:
        """Mark object `id` present for `event`; returns the granularities written."""
        if isinstance(event, TrackOptions):
            options = event
        else:
            if id is None:
                raise ValueError("track() needs an object id")
            options = TrackOptions(
                event=event,
                id=id,
                granularity=granularity,
                past=past,
                expiration_for=expiration_for or {},
            )
        return self.trackers.set_presence(options)

    def analyze(
        self,
        event: str,
        time_spec: Any,
        id: Optional[int] = None,
        granularity: GranularityRequest = None,
    ) -> Query:
        options = QueryOptions(id=None if id is None else int(id), granularity=granularity)
        return Query(self, event, time_spec, options)

    def close(self) -> None:
        self.connection.close()
