import random
import time
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")


def retry(
    func: Callable[[], T],
    retries: int = 5,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.1,
    retry_on: Iterable[type[BaseException]] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Call `func` up to `retries` times, backing off exponentially.

    Only exceptions listed in `retry_on` trigger another attempt; the last
    failure is re-raised unchanged. `on_retry(attempt, exc, sleep_for)` runs
    before each pause and may repair state (reconnect, clear a cache).
    """
    retry_on = tuple(retry_on)
    delay = base_delay
    for attempt in range(retries):
        try:
            return func()
        except retry_on as exc:  # type: ignore[misc]
            if attempt == retries - 1:
                raise
            sleep_for = min(delay, max_delay) + random.uniform(0, delay * jitter)
            if on_retry:
                on_retry(attempt + 1, exc, sleep_for)
            if sleep_for > 0:
                time.sleep(sleep_for)
            delay = min(delay * 2, max_delay)
    # Unreachable
    raise RuntimeError("retry exhausted")
