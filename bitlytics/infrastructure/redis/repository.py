from typing import Dict, List, Optional, Tuple, Union

from bitlytics.core import metrics
from bitlytics.domain.models import Context, CountOptions, TrackOptions
from bitlytics.infrastructure.redis.client import RedisConnection
from bitlytics.metrics.key_codec import KeyCodec


class CounterStore:
    """Write path for counters.

    Each resolved granularity gets one pipeline: an increment (HINCRBY on
    the bucket hash when ids are bucketized, INCR otherwise) followed by an
    EXPIRE refresh. Pipelines are batched, not transactional.
    """

    def __init__(self, connection: RedisConnection, codec: KeyCodec):
        self.connection = connection
        self.codec = codec
        self.config = codec.config

    def increment(self, options: CountOptions) -> List[str]:
        granularities = self.codec.catalog.validate(Context.COUNTER, options.granularity)
        for granularity in granularities:
            key = self.codec.name(
                Context.COUNTER, options.event, granularity, options.past, id=options.id
            )
            ttl = _expiration(
                options.expiration_for, self.config.counter_expirations, granularity
            )
            self._increment(key, ttl)
            metrics.COUNTER_WRITES_TOTAL.labels(granularity=granularity).inc()
        return granularities

    def _increment(self, key: Union[str, Tuple[str, str]], ttl: int):
        def build(pipe):
            if isinstance(key, tuple):
                hash_key, field = key
                pipe.hincrby(hash_key, field, 1)
                pipe.expire(hash_key, ttl)
            else:
                pipe.incr(key)
                pipe.expire(key, ttl)

        return self.connection.pipelined(build)


class TrackerStore:
    """Write path for trackers: SETBIT id to 1 plus an EXPIRE refresh."""

    def __init__(self, connection: RedisConnection, codec: KeyCodec):
        self.connection = connection
        self.codec = codec
        self.config = codec.config

    def set_presence(self, options: TrackOptions) -> List[str]:
        granularities = self.codec.catalog.validate(Context.TRACKER, options.granularity)
        for granularity in granularities:
            key = self.codec.name(Context.TRACKER, options.event, granularity, options.past)
            ttl = _expiration(
                options.expiration_for, self.config.tracker_expirations, granularity
            )
            self._set_bit(key, int(options.id), ttl)
            metrics.TRACKER_WRITES_TOTAL.labels(granularity=granularity).inc()
        return granularities

    def _set_bit(self, key: str, offset: int, ttl: int):
        def build(pipe):
            pipe.setbit(key, offset, 1)
            pipe.expire(key, ttl)

        return self.connection.pipelined(build)


def _expiration(
    overrides: Optional[Dict[str, int]], defaults: Dict[str, int], granularity: str
) -> int:
    if overrides and granularity in overrides:
        return int(overrides[granularity])
    return int(defaults[granularity])
