"""
In-memory key/value cache with per-key expiry.
"""

import copy
import time
import threading
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Thread-safe cache where each entry expires after its own TTL.

    Expired entries are dropped on read and on every write. Values are
    copied in and out, so callers never share the stored object.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set_with_expiry(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires ttl_seconds from now."""
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            self._entries[key] = (now + ttl_seconds, copy.deepcopy(value))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
