"""
Per-client admission control for long-lived stream connections.

Each client key gets a fixed wall-clock window. Within a window at most
``limit`` connections may be admitted; once the window deadline passes, the
next :meth:`AdmissionLimiter.admit` call resets that client's count before
incrementing. Refusals raise :class:`~gurulo.errors.AdmissionRefused` so the
caller must surface a rate-limit response.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from gurulo.config import stream as stream_cfg
from gurulo.errors import AdmissionRefused
from gurulo.maintenance import startup as _startup, shutdown as _shutdown

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AdmissionRecord:
    client_key: str
    count: int
    window_resets_at: float


class AdmissionTicket:
    """Release handle for one admitted connection. Releasing twice is a no-op."""

    __slots__ = ("_limiter", "client_key", "_released", "_lock")

    def __init__(self, limiter: "AdmissionLimiter", client_key: str) -> None:
        self._limiter = limiter
        self.client_key = client_key
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        with self._lock:
            if self._released:
                return False
            self._released = True
        self._limiter._release(self.client_key)
        return True

    def __enter__(self) -> "AdmissionTicket":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"AdmissionTicket(client_key={self.client_key!r}, released={self._released})"


class AdmissionLimiter:
    def __init__(
        self,
        limit: int | None = None,
        window: float | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit if limit is not None else stream_cfg.ADMISSION_LIMIT
        self.window = window if window is not None else stream_cfg.ADMISSION_WINDOW
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.window <= 0:
            raise ValueError("window must be > 0")
        self._clock = clock
        self._records: dict[str, AdmissionRecord] = {}
        self._lock = threading.Lock()
        self._refused = 0
        self._purge_task: asyncio.Task | None = None

    def admit(self, client_key: str) -> AdmissionTicket:
        """Admit one connection for ``client_key`` or raise ``AdmissionRefused``."""

        now = self._clock()
        with self._lock:
            record = self._records.get(client_key)
            if record is None:
                record = AdmissionRecord(client_key, 0, now + self.window)
                self._records[client_key] = record
            elif now >= record.window_resets_at:
                record.count = 0
                record.window_resets_at = now + self.window

            if record.count >= self.limit:
                self._refused += 1
                retry_after = max(0.0, record.window_resets_at - now)
                logger.warning(
                    "Admission refused for %s (%d/%d open, retry in %.1fs)",
                    client_key,
                    record.count,
                    self.limit,
                    retry_after,
                )
                raise AdmissionRefused(client_key, self.limit, retry_after)

            record.count += 1
            logger.debug("Admitted %s (%d/%d)", client_key, record.count, self.limit)
        return AdmissionTicket(self, client_key)

    def _release(self, client_key: str) -> None:
        with self._lock:
            record = self._records.get(client_key)
            if record is None:
                return
            record.count = max(0, record.count - 1)

    def active(self, client_key: str) -> int:
        with self._lock:
            record = self._records.get(client_key)
            return record.count if record else 0

    def purge(self) -> int:
        """Drop records with no open connections whose window has passed."""

        now = self._clock()
        with self._lock:
            stale = [
                key
                for key, rec in self._records.items()
                if rec.count == 0 and now >= rec.window_resets_at
            ]
            for key in stale:
                del self._records[key]
        if stale:
            logger.info("Purged %d idle admission records", len(stale))
        return len(stale)

    def stats(self) -> dict[str, int | float]:
        with self._lock:
            return {
                "clients": len(self._records),
                "open": sum(rec.count for rec in self._records.values()),
                "refused": self._refused,
                "limit": self.limit,
                "window": self.window,
            }

    async def start(self, interval: float | None = None) -> asyncio.Task:
        """Schedule periodic :meth:`purge` so idle client records do not accumulate."""

        if not self._purge_task or self._purge_task.done():
            every = interval or self.window
            logger.info("Starting admission purge (interval=%ss)", every)
            self._purge_task = await _startup(self.purge, every, name="admission-purge")
        return self._purge_task

    async def stop(self) -> None:
        if self._purge_task:
            await _shutdown(self._purge_task)
            self._purge_task = None


__all__ = ["AdmissionLimiter", "AdmissionRecord", "AdmissionTicket"]
