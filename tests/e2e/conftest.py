import os
import uuid
from datetime import datetime

import pytest
import redis

from bitlytics.core.config import Settings
from bitlytics.services.analytics import Analytics

# Redis connection defaults; db 15 keeps test keys away from real data
REDIS_URL = os.getenv("BITLYTICS_TEST_REDIS_URL", "redis://127.0.0.1:6379/15")

NOW = datetime(2024, 5, 15, 12, 30)


@pytest.fixture(scope="session")
def live_redis():
    """Session-scoped client; the e2e suite is skipped when Redis is unreachable."""
    client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    try:
        client.ping()
    except redis.exceptions.ConnectionError as e:
        pytest.skip(f"Redis not reachable at {REDIS_URL}: {e}")
    yield client
    client.close()


@pytest.fixture
def live_analytics(live_redis):
    """Analytics running the bundled Lua script under a throwaway namespace."""
    namespace = f"bitlytics-e2e-{uuid.uuid4().hex[:8]}"
    engine = Analytics(Settings(namespace=namespace), client=live_redis, now=lambda: NOW)
    yield engine
    keys = list(live_redis.scan_iter(match=f"{namespace}:*"))
    if keys:
        live_redis.delete(*keys)
