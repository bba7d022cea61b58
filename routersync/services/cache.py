"""In-process expiring cache driven by an injected clock."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Generic, Hashable, TypeVar

from routersync.services.common import utcnow

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    expires_at: datetime


class ExpiringCache(Generic[K, V]):
    """Map of (key, value, expires_at) entries.

    Expired entries are dropped lazily on access or by ``purge_expired``;
    ``on_evict`` is called with every value that leaves the cache.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], datetime] | None = None,
        on_evict: Callable[[V], None] | None = None,
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or utcnow
        self._on_evict = on_evict
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                expired = entry
            else:
                return entry.value
        self._evicted(expired.value)
        return None

    def set(self, key: K, value: V, ttl_seconds: float | None = None) -> None:
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else self.ttl
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        if previous is not None and previous.value is not value:
            self._evicted(previous.value)

    def pop(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        self._evicted(entry.value)
        return entry.value

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            values = [self._entries.pop(key).value for key in expired]
        for value in values:
            self._evicted(value)
        return len(values)

    def clear(self) -> None:
        with self._lock:
            values = [entry.value for entry in self._entries.values()]
            self._entries.clear()
        for value in values:
            self._evicted(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evicted(self, value: V) -> None:
        if self._on_evict is not None:
            self._on_evict(value)
