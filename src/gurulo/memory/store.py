"""Read side of the memory layer with corruption detection and repair."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable

from gurulo.errors import ValidationFailed

from .schema import MemorySnapshot, empty_snapshot, utc_now, validate_snapshot
from .storage import SnapshotLocation

logger = logging.getLogger(__name__)


class MemoryStore:
    """
    Loads per-user snapshots from a single location.

    A document that fails validation is archived as
    ``<file>.corrupted.<timestamp>`` and replaced with an empty snapshot.
    Loading never raises; the worst case is an empty-but-valid snapshot.
    """

    def __init__(self, location: SnapshotLocation, *, clock: Callable[[], float] = time.time) -> None:
        self.location = location
        self._clock = clock

    async def load(self, user_id: str) -> MemorySnapshot:
        return await asyncio.to_thread(self.load_blocking, user_id)

    async def get_facts(self, user_id: str) -> list[str]:
        snapshot = await self.load(user_id)
        return list(snapshot.facts)

    def load_blocking(self, user_id: str) -> MemorySnapshot:
        try:
            raw = self.location.read(user_id)
        except UnicodeDecodeError as exc:
            logger.error("Memory corruption detected for user %s: %s", user_id, exc)
            return self.repair(user_id)
        except OSError as exc:
            logger.error("Could not read memory for user %s: %s", user_id, exc)
            return empty_snapshot(user_id)

        if raw is None:
            snapshot = empty_snapshot(user_id)
            self._persist(user_id, snapshot)
            return snapshot

        try:
            return validate_snapshot(json.loads(raw), user_id=user_id)
        except (ValueError, ValidationFailed) as exc:
            logger.error("Memory corruption detected for user %s: %s", user_id, exc)
            return self.repair(user_id)

    def repair(self, user_id: str) -> MemorySnapshot:
        """Archive the current document and replace it with a clean snapshot."""

        logger.info("Attempting to repair memory for user %s", user_id)
        try:
            archived = self.location.archive_corrupt(user_id, int(self._clock() * 1000))
            if archived is not None:
                logger.info("Corrupted memory for user %s backed up to %s", user_id, archived)
        except OSError as exc:
            logger.warning("Could not back up corrupted memory for user %s: %s", user_id, exc)

        clean = empty_snapshot(user_id, repaired=True, repaired_at=utc_now())
        if self._persist(user_id, clean):
            logger.info("Memory repaired for user %s", user_id)
        return clean

    def _persist(self, user_id: str, snapshot: MemorySnapshot) -> bool:
        try:
            self.location.write(user_id, snapshot.model_dump_json(indent=2))
        except OSError as exc:
            logger.warning("Could not write memory for user %s: %s", user_id, exc)
            return False
        return True


__all__ = ["MemoryStore"]
