from datetime import datetime

import fakeredis
import pytest
from helpers.script_runtime import LocalScriptDispatch

from bitlytics.core.config import Settings
from bitlytics.infrastructure.redis.client import RedisConnection
from bitlytics.metrics.granularity import GranularityCatalog
from bitlytics.metrics.key_codec import KeyCodec
from bitlytics.services.analytics import Analytics

# A Wednesday, mid-month, so week and month boundaries are both exercised
NOW = datetime(2024, 5, 15, 12, 30)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config():
    return Settings()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def connection(config, redis_client):
    return RedisConnection(config, client=redis_client)


@pytest.fixture
def catalog(config):
    return GranularityCatalog(config)


@pytest.fixture
def codec(connection, config, catalog):
    return KeyCodec(connection, config, catalog)


@pytest.fixture
def analytics(config, redis_client):
    engine = Analytics(config, client=redis_client, now=lambda: NOW)
    engine.dispatch = LocalScriptDispatch(engine.connection)
    return engine
