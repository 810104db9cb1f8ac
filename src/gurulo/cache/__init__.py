"""
Response and conversation cache package.

Modules
=======

``manager``
    Defines :class:`~gurulo.cache.manager.ResponseCache`, which owns the two
    independent stores and schedules the expiry sweep.
``store``
    Provides :class:`~gurulo.cache.store.TTLCache`, the TTL-bounded store
    with least-recently-accessed eviction.
``entry``
    Cache entry bookkeeping plus the tagged payload variants
    (:class:`CachedResponse`, :class:`ConversationSummary`).
``fingerprint``
    Deterministic request fingerprints used as response cache keys.
"""

from .entry import CachedResponse, CacheHit, CacheStats, ConversationSummary
from .fingerprint import fingerprint
from .manager import ResponseCache
from .store import TTLCache

__all__ = [
    "CachedResponse",
    "CacheHit",
    "CacheStats",
    "ConversationSummary",
    "ResponseCache",
    "TTLCache",
    "fingerprint",
]
