import time
from typing import Any, Dict, Optional, Sequence

import msgpack
import redis
from redis.exceptions import NoScriptError

from bitlytics.core import metrics
from bitlytics.core.logger import get_logger
from bitlytics.infrastructure.redis.client import RedisConnection
from bitlytics.infrastructure.redis.constants import LUA_SCRIPT, SCRIPT_KINDS
from bitlytics.utils.retry import retry

logger = get_logger("bitlytics.script")


def pack_arguments(kind: str, keys: Sequence[Any], params: Dict[str, Any]) -> list:
    """Encode the (kind, keys, options) triple as independent msgpack blobs."""
    return [
        msgpack.packb(kind, use_bin_type=True),
        msgpack.packb(list(keys), use_bin_type=True),
        msgpack.packb(params, use_bin_type=True),
    ]


def endpoint_of(client: redis.Redis) -> str:
    kwargs = getattr(client.connection_pool, "connection_kwargs", {}) or {}
    if kwargs.get("path"):
        return f"unix://{kwargs['path']}/{kwargs.get('db', 0)}"
    return f"{kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db', 0)}"


class ScriptDispatch:
    """Runs the aggregation script by SHA, loading it once per endpoint.

    If the endpoint no longer knows the SHA (restart, SCRIPT FLUSH) the
    cached SHA is dropped and the call is retried exactly once.
    """

    def __init__(self, connection: RedisConnection, source: Optional[str] = None):
        self.connection = connection
        self._source = source
        self._shas: Dict[str, str] = {}

    @property
    def source(self) -> str:
        if self._source is None:
            self._source = LUA_SCRIPT.read_text(encoding="utf-8")
        return self._source

    def invoke(self, kind: str, keys: Sequence[Any], params: Dict[str, Any]) -> Any:
        if kind not in SCRIPT_KINDS:
            raise ValueError(f"Unknown script kind: {kind}")
        args = pack_arguments(kind, keys, params)
        metrics.SCRIPT_DISPATCH_TOTAL.labels(kind=kind).inc()
        logger.debug("Dispatching script", extra={"kind": kind, "keys": len(keys)})
        started = time.perf_counter()
        try:
            return self.connection.execute(lambda r: self._run(r, args))
        finally:
            metrics.SCRIPT_DISPATCH_LATENCY_SECONDS.observe(
                time.perf_counter() - started
            )

    def _run(self, client: redis.Redis, args: list) -> Any:
        endpoint = endpoint_of(client)

        def attempt() -> Any:
            return client.evalsha(self._sha(client, endpoint), 0, *args)

        def forget(_attempt: int, _exc: BaseException, _sleep: float) -> None:
            metrics.SCRIPT_NOSCRIPT_RETRIES_TOTAL.inc()
            logger.info("Script unknown to endpoint, reloading", extra={"endpoint": endpoint})
            self._shas.pop(endpoint, None)

        return retry(
            attempt,
            retries=2,
            base_delay=0,
            jitter=0,
            retry_on=(NoScriptError,),
            on_retry=forget,
        )

    def _sha(self, client: redis.Redis, endpoint: str) -> str:
        sha = self._shas.get(endpoint)
        if sha is None:
            sha = client.script_load(self.source)
            self._shas[endpoint] = sha
            metrics.SCRIPT_LOADS_TOTAL.inc()
            logger.info("Loaded aggregation script", extra={"endpoint": endpoint})
        return sha
