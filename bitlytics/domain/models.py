from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Context(str, Enum):
    """Key context; the value is the one-character tag written into keys."""

    COUNTER = "c"
    TRACKER = "t"
    OPERATION = "o"

    @property
    def short(self) -> str:
        return self.value

    @property
    def long(self) -> str:
        return self.name.lower()


class GranularityRange(NamedTuple):
    """Inclusive slice of the granularity catalog, e.g. daily..yearly."""

    first: str
    last: str


GranularityRequest = Union[GranularityRange, Tuple[str, str], List[str], str, None]


class TimeBounds(BaseModel):
    """Explicit time frame bounds. Missing bounds are defaulted by TimeFrame."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_: Optional[Union[datetime, str]] = Field(default=None, alias="from")
    to: Optional[Union[datetime, str]] = None


class CountOptions(BaseModel):
    """Arguments of a counter write."""

    event: str
    id: Optional[int] = None
    granularity: GranularityRequest = None
    past: Optional[datetime] = None
    expiration_for: Dict[str, int] = {}


class TrackOptions(BaseModel):
    """Arguments of a tracker write; trackers always need an object id."""

    event: str
    id: int
    granularity: GranularityRequest = None
    past: Optional[datetime] = None
    expiration_for: Dict[str, int] = {}


class QueryOptions(BaseModel):
    """Filters bound to a query leaf."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    granularity: GranularityRequest = None
