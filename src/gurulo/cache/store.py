"""
TTL-bounded, capacity-bounded in-memory store.

Entries expire ``ttl`` seconds after creation regardless of access. When the
store is full, inserting a new key evicts the single entry with the oldest
``last_accessed`` timestamp. Hit/miss statistics are informational only and
never feed into eviction.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from .entry import PAYLOAD_TYPES, CacheEntry, CacheHit, CacheStats, Payload

logger = logging.getLogger(__name__)


class TTLCache:
    """Recency-evicting cache with lazy and swept expiry."""

    def __init__(
        self,
        name: str,
        max_size: int,
        ttl: float,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.name = name
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._expirations = 0

    # ------------------------------------------------------------------ #
    # WRITE helpers
    # ------------------------------------------------------------------ #

    def put(self, key: str, payload: Payload, metadata: dict[str, Any] | None = None) -> bool:
        """
        Store ``payload`` under ``key``.

        Returns ``False`` only for an empty key, an empty payload or an
        unsupported payload type; a full cache is resolved by eviction.
        """
        if not key or not payload:
            logger.warning("Rejected %s cache put: empty key or payload", self.name)
            return False
        if not isinstance(payload, PAYLOAD_TYPES):
            logger.warning(
                "Rejected %s cache put: unsupported payload type %s",
                self.name,
                type(payload).__name__,
            )
            return False

        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            metadata={"timestamp": now, **(metadata or {})},
            created_at=now,
            last_accessed=now,
        )
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_lru()
            self._entries[key] = entry
            self._sets += 1
        logger.debug("Cached %s entry %s", self.name, key[:16])
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d %s cache entries", count, self.name)
        return count

    def _evict_lru(self) -> None:
        # Caller holds the lock.
        oldest = min(self._entries.values(), key=lambda e: e.last_accessed, default=None)
        if oldest is None:
            return
        del self._entries[oldest.key]
        self._evictions += 1
        logger.info("Evicted least recently used %s entry %s", self.name, oldest.key[:16])

    # ------------------------------------------------------------------ #
    # READ helpers
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> CacheHit | None:
        """Return a :class:`CacheHit` for a live entry, else ``None``."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now, self.ttl):
                del self._entries[key]
                self._misses += 1
                self._expirations += 1
                logger.info("%s cache entry expired: %s", self.name, key[:16])
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            return CacheHit(
                payload=entry.payload,
                metadata=dict(entry.metadata),
                age=entry.age(now),
                access_count=entry.access_count,
            )

    def details(self, key: str) -> dict[str, Any] | None:
        """Inspect an entry without touching its recency."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return {
                "type": entry.payload.kind,
                "age": entry.age(now),
                "access_count": entry.access_count,
                "last_accessed": entry.last_accessed,
                "expired": entry.is_expired(now, self.ttl),
            }

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------ #
    # MAINTENANCE
    # ------------------------------------------------------------------ #

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were dropped."""

        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now, self.ttl)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        if expired:
            logger.info("Swept %d expired %s cache entries", len(expired), self.name)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self.name,
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                evictions=self._evictions,
                expirations=self._expirations,
                size=len(self._entries),
                max_size=self.max_size,
                ttl=self.ttl,
            )
