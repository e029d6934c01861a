"""In-memory TTL cache: key -> (value, expires). One instance per process."""
import threading
import time
from typing import Any, Callable


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires = entry
            if expires > self._clock():
                return value
            del self._entries[key]
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def remember(self, key: str, compute: Callable[[], Any]) -> Any:
        """Cached value if still fresh, otherwise compute() and store it. Exceptions are not cached."""
        value = self.get(key)
        if value is not None:
            return value
        value = compute()
        if self.ttl_seconds > 0:
            self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
