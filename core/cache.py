"""
Cache Abstraction
=================

A small key-value cache interface injected into store wrappers. The
policy decision engine never touches a cache itself; only collaborators
such as `CachedIdentityStore` do.

`MemoryCache` is a thread-safe, single-process implementation with
per-key expiry. A Redis-backed cache only needs the same four methods.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class Cache(Protocol):
    """Minimal cache contract: get/set/delete plus remaining time-to-live."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def ttl(self, key: str) -> Optional[float]:
        ...


class MemoryCache:
    """
    In-process cache with optional per-key expiry.

    Args:
        default_ttl: Seconds an entry lives when set() gets no ttl (None = forever)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, default_ttl: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()

    def _is_expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._is_expired(expires_at):
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left for a key, None if missing or without expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            _, expires_at = entry
            if expires_at is None:
                return None
            remaining = expires_at - self._clock()
            if remaining <= 0:
                del self._entries[key]
                return None
            return remaining

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)
