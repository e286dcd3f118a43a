from typing import Dict, List, Literal, Tuple, Union

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY
YEAR = 365 * DAY

GranularitySetting = Union[Tuple[str, str], List[str], str]


class GranularitySpec(BaseModel):
    """One named time resolution: calendar step unit and key label pattern."""

    step: Literal["minute", "hour", "day", "week", "month", "year"]
    pattern: str


class EncodeSettings(BaseModel):
    events: bool = True
    ids: bool = True


def _default_granularities() -> Dict[str, GranularitySpec]:
    # Ordered finest to coarsest; range resolution relies on this order.
    return {
        "minutely": GranularitySpec(step="minute", pattern="%Y%m%d%H%M"),
        "hourly": GranularitySpec(step="hour", pattern="%Y%m%d%H"),
        "daily": GranularitySpec(step="day", pattern="%Y%m%d"),
        "weekly": GranularitySpec(step="week", pattern="%GW%V"),
        "monthly": GranularitySpec(step="month", pattern="%Y%m"),
        "yearly": GranularitySpec(step="year", pattern="%Y"),
    }


def _default_expirations() -> Dict[str, int]:
    return {
        "minutely": DAY,
        "hourly": WEEK,
        "daily": 90 * DAY,
        "weekly": YEAR,
        "monthly": YEAR,
        "yearly": YEAR,
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="bitlytics_", env_nested_delimiter="__"
    )

    # Redis
    redis_url: str = "redis://127.0.0.1:6379"
    pool_size: int = 5
    pool_timeout: int = 5  # seconds to wait for a free connection
    silent: bool = False

    # Keys
    namespace: str = "rl"
    separator: str = ":"
    bucket: bool = True
    bucket_size: int = 1000  # keep <= hash-max-listpack-entries
    encode: EncodeSettings = EncodeSettings()

    # Granularities / retention
    granularities: Dict[str, GranularitySpec] = _default_granularities()
    counter_expirations: Dict[str, int] = _default_expirations()
    counter_granularity: GranularitySetting = ("daily", "yearly")
    tracker_expirations: Dict[str, int] = _default_expirations()
    tracker_granularity: GranularitySetting = ("daily", "yearly")

    # Temporary operation keys
    auto_clean: bool = True
    operation_expiration: int = DAY

    # Logging
    app_log_level: str = "INFO"
    app_log_redaction_patterns: list[str] = [
        "password",
        "token",
        "secret",
        "authorization",
    ]
    app_environment: str = "production"


settings = Settings()
