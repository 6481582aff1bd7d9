"""Per-provider minimum-interval rate limiting."""

import threading
import time
from collections.abc import Callable


class RateLimiter:
    """Spaces successive calls at least min_interval seconds apart.

    Safe to share between threads; callers queue on an internal lock.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: float | None = None

    def wait(self) -> None:
        with self._lock:
            if self._last is not None:
                remaining = self.min_interval - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
            self._last = self._clock()

    @property
    def per_minute(self) -> int:
        if self.min_interval <= 0:
            return 0
        return int(60 / self.min_interval)
