"""Cache entry and payload types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union


@dataclass(frozen=True, slots=True)
class CachedResponse:
    """Full generated response for a fingerprinted request."""

    text: str
    kind: Literal["response"] = "response"

    def __bool__(self) -> bool:
        return bool(self.text)


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    """Rolling per-user conversation summary."""

    summary: str
    context: dict[str, Any] = field(default_factory=dict)
    message_count: int = 1
    kind: Literal["conversation"] = "conversation"

    def __bool__(self) -> bool:
        return bool(self.summary)


Payload = Union[CachedResponse, ConversationSummary]
PAYLOAD_TYPES = (CachedResponse, ConversationSummary)


@dataclass(slots=True)
class CacheEntry:
    """A stored payload plus the bookkeeping used for TTL and LRU eviction."""

    key: str
    payload: Payload
    metadata: dict[str, Any]
    created_at: float
    last_accessed: float
    access_count: int = 0

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float, ttl: float) -> bool:
        return self.age(now) > ttl


@dataclass(frozen=True, slots=True)
class CacheHit:
    """Result of a successful lookup."""

    payload: Payload
    metadata: dict[str, Any]
    age: float
    access_count: int
    hit: bool = True


@dataclass(frozen=True, slots=True)
class CacheStats:
    name: str
    hits: int
    misses: int
    sets: int
    evictions: int
    expirations: int
    size: int
    max_size: int
    ttl: float

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_size": self.max_size,
            "ttl": self.ttl,
            "hit_rate": round(self.hit_rate, 4),
        }
