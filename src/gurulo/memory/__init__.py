"""
Persistent per-user memory package.

Modules
=======

``schema``
    :class:`~gurulo.memory.schema.MemorySnapshot` plus the shared
    validation helpers and fallback/empty snapshot builders.
``storage``
    Atomic per-user JSON documents (:class:`SnapshotLocation`) and the
    two-location :class:`MirroredWriter`.
``sync_queue``
    :class:`MemorySyncQueue`, the retrying write-behind queue.
``store``
    :class:`MemoryStore`, the read side that repairs corrupted documents.
``facts``
    Fact extraction and de-duplication feeding the sync queue.
"""

from .facts import dedupe_facts, extract_and_queue_facts, extract_facts
from .schema import MemorySnapshot, fallback_snapshot, validate_snapshot
from .storage import MirroredWriter, SnapshotLocation, WriteOutcome, WriteResult
from .store import MemoryStore
from .sync_queue import DrainReport, MemorySyncQueue, SyncQueueItem

__all__ = [
    "DrainReport",
    "MemorySnapshot",
    "MemoryStore",
    "MemorySyncQueue",
    "MirroredWriter",
    "SnapshotLocation",
    "SyncQueueItem",
    "WriteOutcome",
    "WriteResult",
    "dedupe_facts",
    "extract_and_queue_facts",
    "extract_facts",
    "fallback_snapshot",
    "validate_snapshot",
]
