"""
Write-behind queue that persists memory snapshots to mirrored locations.

Producers call :meth:`MemorySyncQueue.enqueue`, which only appends a copy to
an in-memory table. A periodic drain cycle attempts every queued item:

- snapshots that fail validation are replaced with a fallback snapshot,
- full and partial writes dequeue the item,
  together with any older queued items for the same user,
- failed writes are retried on later cycles until ``max_retries`` attempts,
  after which the item is dropped with an error log.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from gurulo.config import sync as sync_cfg
from gurulo.errors import ValidationFailed
from gurulo.maintenance import startup as _startup, shutdown as _shutdown

from .schema import MemorySnapshot, fallback_snapshot, validate_snapshot
from .storage import MirroredWriter, WriteOutcome, WriteResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncQueueItem:
    item_id: str
    user_id: str
    snapshot: Any
    tag: str
    created_at: float
    seq: int = 0
    retries: int = 0
    last_error: str | None = None


@dataclass(slots=True)
class DrainReport:
    succeeded: list[str] = field(default_factory=list)
    partial: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    superseded: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.partial) + len(self.retried) + len(self.dropped)


class MemorySyncQueue:
    def __init__(
        self,
        writer: MirroredWriter,
        *,
        max_retries: int | None = None,
        max_bytes: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.writer = writer
        self.max_retries = max_retries if max_retries is not None else sync_cfg.MAX_RETRIES
        self.max_bytes = max_bytes if max_bytes is not None else sync_cfg.MAX_SNAPSHOT_BYTES
        self._clock = clock
        self._items: dict[str, SyncQueueItem] = {}
        self._ids = itertools.count(1)
        self._running = False
        self._drain_task: asyncio.Task | None = None
        self._totals = {"synced": 0, "partial": 0, "dropped": 0, "replaced": 0, "superseded": 0}

    # ------------------------------------------------------------------ #
    # Producers
    # ------------------------------------------------------------------ #

    def enqueue(self, user_id: str, snapshot: MemorySnapshot | dict | Any, tag: str = "update") -> str:
        """Queue a copy of ``snapshot`` for ``user_id``; never blocks on I/O."""

        if isinstance(snapshot, MemorySnapshot):
            payload: Any = snapshot.model_dump()
        else:
            try:
                payload = copy.deepcopy(snapshot)
            except Exception as exc:
                # Validation will swap in the fallback snapshot at drain time.
                logger.warning("Could not copy memory snapshot for user %s: %s", user_id, exc)
                payload = None

        seq = next(self._ids)
        item_id = f"{user_id}_{seq}"
        self._items[item_id] = SyncQueueItem(
            item_id=item_id,
            user_id=user_id,
            snapshot=payload,
            tag=tag,
            created_at=self._clock(),
            seq=seq,
        )
        logger.info("Queued memory sync for user %s, type: %s", user_id, tag)
        return item_id

    def latest(self, user_id: str) -> dict | None:
        """Copy of the newest queued snapshot for ``user_id``, if any."""

        for item in reversed(list(self._items.values())):
            if item.user_id == user_id and item.snapshot is not None:
                return copy.deepcopy(item.snapshot)
        return None

    # ------------------------------------------------------------------ #
    # Drain cycle
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._running

    async def drain(self) -> DrainReport:
        """Attempt every queued item once. Overlapping calls return a skipped report."""

        if self._running:
            logger.debug("Memory sync drain already running; skipping")
            return DrainReport(skipped=True)
        if not self._items:
            return DrainReport()

        self._running = True
        report = DrainReport()
        try:
            batch = list(self._items.values())
            logger.info("Processing %d memory sync items", len(batch))
            for item in batch:
                if item.item_id in self._items:
                    await self._process(item, report)
        finally:
            self._running = False

        logger.info(
            "Sync completed: %d success, %d partial, %d retrying, %d failed",
            len(report.succeeded),
            len(report.partial),
            len(report.retried),
            len(report.dropped),
        )
        return report

    def _prepare(self, item: SyncQueueItem, report: DrainReport) -> MemorySnapshot:
        try:
            return validate_snapshot(item.snapshot, user_id=item.user_id, max_bytes=self.max_bytes)
        except ValidationFailed as exc:
            logger.warning("Invalid memory data for user %s, using fallback: %s", item.user_id, exc)
            snapshot = fallback_snapshot(item.user_id)
            # Retries reuse the fallback rather than re-validating bad data.
            item.snapshot = snapshot.model_dump()
            report.replaced.append(item.item_id)
            self._totals["replaced"] += 1
            return snapshot

    def _supersede(self, written: SyncQueueItem, report: DrainReport) -> None:
        """Drop queued items for the same user that are older than ``written``."""

        stale = [
            item.item_id
            for item in self._items.values()
            if item.user_id == written.user_id and item.seq < written.seq
        ]
        for item_id in stale:
            del self._items[item_id]
        if stale:
            report.superseded.extend(stale)
            self._totals["superseded"] += len(stale)
            logger.info(
                "Discarded %d older memory sync item(s) for user %s", len(stale), written.user_id
            )

    async def _process(self, item: SyncQueueItem, report: DrainReport) -> None:
        snapshot = self._prepare(item, report)
        try:
            result = await self.writer.write(item.user_id, snapshot)
        except Exception as exc:
            result = WriteResult(WriteOutcome.FAILED, errors={"writer": f"{type(exc).__name__}: {exc}"})

        if result.outcome is WriteOutcome.FULL:
            self._items.pop(item.item_id, None)
            report.succeeded.append(item.item_id)
            self._supersede(item, report)
            self._totals["synced"] += 1
            logger.info("Memory synced for user %s", item.user_id)
            return

        if result.outcome is WriteOutcome.PARTIAL:
            self._items.pop(item.item_id, None)
            report.partial.append(item.item_id)
            self._totals["partial"] += 1
            self._supersede(item, report)
            return

        item.retries += 1
        item.last_error = "; ".join(f"{k}: {v}" for k, v in result.errors.items())
        if item.retries >= self.max_retries:
            self._items.pop(item.item_id, None)
            report.dropped.append(item.item_id)
            self._totals["dropped"] += 1
            logger.error(
                "Memory sync failed permanently for user %s after %d attempts (%s): %s",
                item.user_id,
                item.retries,
                item.tag,
                item.last_error,
            )
        else:
            report.retried.append(item.item_id)
            logger.warning(
                "Memory sync retry %d/%d for user %s: %s",
                item.retries,
                self.max_retries,
                item.user_id,
                item.last_error,
            )

    # ------------------------------------------------------------------ #
    # Introspection & scheduling
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        return len(self._items)

    def pending(self) -> list[dict[str, Any]]:
        return [
            {
                "item_id": item.item_id,
                "user_id": item.user_id,
                "tag": item.tag,
                "created_at": item.created_at,
                "retries": item.retries,
                "last_error": item.last_error,
            }
            for item in self._items.values()
        ]

    def stats(self) -> dict[str, Any]:
        return {
            "queue_size": len(self._items),
            "is_processing": self._running,
            "max_retries": self.max_retries,
            **self._totals,
        }

    async def start(self, interval: float | None = None) -> asyncio.Task:
        if not self._drain_task or self._drain_task.done():
            every = interval or sync_cfg.SYNC_INTERVAL
            logger.info("Memory sync process started with %ss interval", every)
            self._drain_task = await _startup(self.drain, every, name="memory-sync")
        return self._drain_task

    async def stop(self) -> None:
        if self._drain_task:
            await _shutdown(self._drain_task)
            self._drain_task = None
