from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError, ReadOnlyError

from bitlytics.core.config import Settings
from bitlytics.infrastructure.redis.client import RedisConnection


def test_execute_passes_client(connection, redis_client):
    redis_client.set("k", "v")
    assert connection.execute(lambda r: r.get("k")) == "v"


def test_errors_propagate_by_default():
    conn = RedisConnection(Settings(silent=False), client=MagicMock())
    with pytest.raises(ConnectionError):
        conn.execute(MagicMock(side_effect=ConnectionError("down")))


def test_silent_mode_swallows_store_errors():
    conn = RedisConnection(Settings(silent=True), client=MagicMock())
    assert conn.execute(MagicMock(side_effect=ConnectionError("down"))) is None


def test_silent_mode_does_not_hide_programming_errors():
    conn = RedisConnection(Settings(silent=True), client=MagicMock())
    with pytest.raises(KeyError):
        conn.execute(MagicMock(side_effect=KeyError("oops")))


def test_readonly_reconnects_and_retries_once():
    client = MagicMock()
    conn = RedisConnection(Settings(), client=client)
    func = MagicMock(side_effect=[ReadOnlyError("READONLY replica"), "OK"])

    assert conn.execute(func) == "OK"
    assert func.call_count == 2
    client.connection_pool.disconnect.assert_called_once()


def test_second_readonly_failure_propagates():
    client = MagicMock()
    conn = RedisConnection(Settings(), client=client)
    func = MagicMock(side_effect=ReadOnlyError("READONLY replica"))

    with pytest.raises(ReadOnlyError):
        conn.execute(func)
    assert func.call_count == 2


def test_second_readonly_failure_swallowed_when_silent():
    conn = RedisConnection(Settings(silent=True), client=MagicMock())
    assert conn.execute(MagicMock(side_effect=ReadOnlyError("READONLY"))) is None


def test_pipelined_batches_commands(connection, redis_client):
    def build(pipe):
        pipe.incr("counter")
        pipe.expire("counter", 60)

    assert connection.pipelined(build) == [1, True]
    assert 0 < redis_client.ttl("counter") <= 60


def test_delete_without_keys_is_noop(connection):
    assert connection.delete() == 0


def test_builds_blocking_pool_from_settings():
    conn = RedisConnection(Settings(pool_size=3, pool_timeout=2))
    pool = conn.client.connection_pool
    assert pool.max_connections == 3
    assert pool.timeout == 2
