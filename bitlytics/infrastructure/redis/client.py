from typing import Callable, Optional, TypeVar

import redis
from redis.exceptions import ReadOnlyError, RedisError

from bitlytics.core import metrics
from bitlytics.core.config import Settings
from bitlytics.core.config import settings as default_settings
from bitlytics.core.logger import get_logger
from bitlytics.utils.retry import retry

T = TypeVar("T")

logger = get_logger("bitlytics.redis")


class RedisConnection:
    """Pooled Redis access with the library's error policy.

    Every call borrows a connection from a blocking pool (waiting at most
    `pool_timeout` seconds). A write rejected by a read-only replica drops the
    pooled connections and is retried once on a fresh one. Other Redis errors
    propagate, or are logged and turned into `None` when `silent` is set.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.config = config or default_settings
        if client is None:
            pool = redis.BlockingConnectionPool.from_url(
                self.config.redis_url,
                max_connections=self.config.pool_size,
                timeout=self.config.pool_timeout,
                decode_responses=True,
            )
            client = redis.Redis(connection_pool=pool)
        self._client = client

    @property
    def client(self) -> redis.Redis:
        return self._client

    def execute(self, func: Callable[[redis.Redis], T]) -> Optional[T]:
        try:
            return self.unchecked(func)
        except RedisError as e:
            if not self.config.silent:
                raise
            metrics.STORE_ERRORS_SUPPRESSED_TOTAL.inc()
            logger.warning("Suppressed Redis error", extra={"error": str(e)})
            return None

    def unchecked(self, func: Callable[[redis.Redis], T]) -> T:
        """Run `func` with the read-only retry but without silencing errors."""
        return retry(
            lambda: func(self._client),
            retries=2,
            base_delay=0,
            jitter=0,
            retry_on=(ReadOnlyError,),
            on_retry=self._reconnect,
        )

    def pipelined(self, build: Callable[[redis.client.Pipeline], None]) -> Optional[list]:
        """Send the commands queued by `build` in one non-transactional batch."""

        def run(client: redis.Redis) -> list:
            pipe = client.pipeline(transaction=False)
            build(pipe)
            return pipe.execute()

        return self.execute(run)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self.execute(lambda r: r.delete(*keys)) or 0

    def close(self) -> None:
        self._client.close()

    def _reconnect(self, attempt: int, exc: BaseException, _sleep: float) -> None:
        metrics.READONLY_RECONNECTS_TOTAL.inc()
        logger.warning(
            "Write hit a read-only replica, reconnecting",
            extra={"attempt": attempt, "error": str(exc)},
        )
        self._client.connection_pool.disconnect()
