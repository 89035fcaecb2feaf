import threading
import time
from typing import Callable, Dict, Tuple

from ...application.ports.rate_limiter import RateLimiter


class InMemoryRateLimiter(RateLimiter):
    """Fixed-window counter: one (count, window_start) pair per key."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._store: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        rk = f"{key}:{window_seconds}"
        now = self._clock()
        with self._lock:
            count, window_start = self._store.get(rk, (0, now))
            if now - window_start >= window_seconds:
                count, window_start = 0, now
            if count >= max_requests:
                return False
            self._store[rk] = (count + 1, window_start)
            return True

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, (_, start) in self._store.items() if now - start >= int(k.rsplit(":", 1)[1])]
            for k in stale:
                del self._store[k]
        return len(stale)
