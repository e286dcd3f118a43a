"""Key naming and numeric id compression.

Key layout::

    [namespace:]tag:event:label[:suffix]

`tag` is the context (c, t or o), `event` has its purely numeric segments
compressed, `label` is the bucket instant formatted with the granularity
pattern and `suffix` is the (encoded) object id or id bucket of a counter.
Bucketized counter keys come back as `(hash_key, field)` pairs.
"""

import uuid
from itertools import islice
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from bitlytics.core import metrics
from bitlytics.core.config import Settings
from bitlytics.core.config import settings as default_settings
from bitlytics.core.exceptions import KeyRangeError
from bitlytics.core.logger import get_logger
from bitlytics.domain.models import Context, GranularityRequest
from bitlytics.infrastructure.redis.constants import MAX_SCRIPT_KEYS
from bitlytics.metrics.bucketing import to_local
from bitlytics.metrics.granularity import GranularityCatalog
from bitlytics.metrics.time_frame import TimeFrame

logger = get_logger("bitlytics.keys")

StorageKey = Union[str, Tuple[str, str]]

# Two decimal digits -> one character. ':' is deliberately absent so that it
# can stand in for a custom separator (see _swap_separator).
ENCODE_MAP: Dict[int, str] = dict(
    enumerate(
        [
            "1", "2", "3", "4", "5", "6", "7", "8", "9", "0",
            "-", "=", "!", "@", "#", "$", "%", "^", "&", "*",
            "(", ")", "_", "+", "a", "b", "c", "d", "e", "f",
            "g", "h", "i", "j", "k", "l", "m", "n", "o", "p",
            "q", "r", "s", "t", "u", "v", "w", "x", "y", "z",
            "A", "B", "C", "D", "E", "F", "G", "H", "I", "J",
            "K", "L", "M", "N", "O", "P", "Q", "R", "S", "T",
            "U", "V", "W", "X", "Y", "Z", "[", "]", "\\", ";",
            ",", ".", "/", "{", "}", "|", "§", "<", ">", "?",
            "`", "~", "ä", "Ä", "ü", "Ü", "ö", "Ö", "é", "É",
        ]
    )
)
_DEFAULT_SEPARATOR = ":"


def _swap_separator(table: Dict[int, str], separator: str) -> Dict[int, str]:
    table = dict(table)
    if separator != _DEFAULT_SEPARATOR:
        for code, symbol in table.items():
            if symbol == separator:
                table[code] = _DEFAULT_SEPARATOR
                break
    return table


class KeyCodec:
    def __init__(
        self,
        connection=None,
        config: Optional[Settings] = None,
        catalog: Optional[GranularityCatalog] = None,
    ):
        self.connection = connection
        self.config = config or default_settings
        self.catalog = catalog or GranularityCatalog(self.config)
        self.separator = self.config.separator
        self.encode_map = _swap_separator(ENCODE_MAP, self.separator)
        self.decode_map = {symbol: code for code, symbol in self.encode_map.items()}

    # Numeric encoding
    def encode(self, number: Union[int, str]) -> str:
        digits = str(number)
        if len(digits) % 2:
            digits = "0" + digits
        return "".join(
            self.encode_map[int(digits[i : i + 2])] for i in range(0, len(digits), 2)
        )

    def decode(self, string: str) -> int:
        decoded = "".join(f"{self.decode_map[symbol]:02d}" for symbol in str(string))
        return int(decoded) if decoded else 0

    # Key names
    def name(
        self,
        context: Context,
        event: str,
        granularity: GranularityRequest,
        past: Optional[datetime] = None,
        id: Optional[int] = None,
        namespaced: bool = True,
    ) -> StorageKey:
        past = to_local(past) if past else datetime.now()
        granularity = self.catalog.first(context, granularity)
        if self.config.encode.events:
            event = self.encode_event(event)
        sep = self.separator
        key = f"{context.short}{sep}{event}{sep}{self.time_label(granularity, past)}"
        if namespaced:
            key = self.with_namespace(key)
        if self.bucketize(context, id):
            return self._bucketized(key, id)
        if context is Context.COUNTER and id is not None:
            return self._unbucketized(key, id)
        return key

    def timeframed(
        self,
        context: Context,
        event: str,
        time_spec: Any,
        granularity: GranularityRequest = None,
        id: Optional[int] = None,
        now=None,
    ) -> List[StorageKey]:
        """Every key of `event` over the time frame, in bucket order.

        Raises KeyRangeError when the frame needs more keys than one script
        invocation can unpack.
        """
        frame = TimeFrame(context, time_spec, self.catalog, granularity, now=now)
        moments = list(islice(frame.splat(), MAX_SCRIPT_KEYS + 1))
        if len(moments) > MAX_SCRIPT_KEYS:
            raise KeyRangeError(MAX_SCRIPT_KEYS)
        keys = [
            self.name(context, event, frame.granularity, moment, id=id)
            for moment in moments
        ]
        return keys

    def with_namespace(self, key: str) -> str:
        namespace = self.config.namespace
        if not namespace:
            return key
        if key.split(self.separator)[0] == namespace:
            return key
        return f"{namespace}{self.separator}{key}"

    def time_label(self, granularity: str, past: datetime) -> str:
        return past.strftime(self.catalog.spec(granularity).pattern)

    def parse_label(self, granularity: str, label: str) -> datetime:
        pattern = self.catalog.spec(granularity).pattern
        if "%G" in pattern or "%V" in pattern:
            # ISO week directives need a weekday to resolve to a date
            return datetime.strptime(f"{label}-1", f"{pattern}-%u")
        return datetime.strptime(label, pattern)

    def encode_event(self, event: str) -> str:
        return self.separator.join(
            self.encode(part) if part.isdigit() and part.isascii() else part
            for part in str(event).split(self.separator)
        )

    def bucketize(self, context: Context, id: Optional[int]) -> bool:
        return context is Context.COUNTER and self.config.bucket and id is not None

    # Temporary operation keys
    def unique_namespace(self) -> str:
        """Claim a fresh, TTL-bound operation key holding 0.

        The claim is a single SET NX, so concurrent allocators never share a
        key. Errors always propagate, even in silent mode.
        """
        ttl = self.config.operation_expiration
        while True:
            key = self.with_namespace(self._operation())
            claimed = self.connection.unchecked(
                lambda r: r.set(key, 0, ex=ttl, nx=True)
            )
            if not claimed:
                logger.debug("Operation key collision, regenerating")
                continue
            metrics.TEMP_KEYS_ALLOCATED_TOTAL.inc()
            logger.debug("Allocated operation key", extra={"operation_key": key})
            return key

    def _operation(self) -> str:
        return f"{Context.OPERATION.short}{self.separator}{uuid.uuid4()}"

    def _bucketized(self, key: str, id: int) -> Tuple[str, str]:
        bucket, value = divmod(int(id), self.config.bucket_size)
        if self.config.encode.ids:
            return f"{key}{self.separator}{self.encode(bucket)}", self.encode(value)
        return f"{key}{self.separator}{bucket}", str(value)

    def _unbucketized(self, key: str, id: int) -> str:
        suffix = self.encode(int(id)) if self.config.encode.ids else str(id)
        return f"{key}{self.separator}{suffix}"
