"""Lifecycle management for in-flight response streams."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Callable

from gurulo.config import stream as stream_cfg
from gurulo.errors import DuplicateSession, SessionAlreadyTerminal, UnknownSession
from gurulo.maintenance import startup as _startup, shutdown as _shutdown

from .admission import AdmissionTicket
from .session import (
    SessionSnapshot,
    SessionState,
    StreamChunk,
    StreamEvent,
    StreamSession,
)

logger = logging.getLogger(__name__)

Listener = Callable[[StreamEvent], None]


class StreamSessionManager:
    """
    Owns the live session table.

    Chunk emission is serialised per session and listeners are notified inside
    the same call, so the order listeners observe is the append order.
    Different sessions emit concurrently.
    """

    def __init__(
        self,
        *,
        cleanup_timeout: float | None = None,
        long_lived_threshold: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cleanup_timeout = (
            cleanup_timeout if cleanup_timeout is not None else stream_cfg.CLEANUP_TIMEOUT
        )
        self.long_lived_threshold = (
            long_lived_threshold
            if long_lived_threshold is not None
            else stream_cfg.LONG_LIVED_THRESHOLD
        )
        self._clock = clock
        self._sessions: dict[str, StreamSession] = {}
        self._table_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._removals: dict[str, asyncio.TimerHandle] = {}
        self._reap_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every stream event; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _publish(self, event: StreamEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error(
                    "Stream listener %r failed on %s for %s: %s",
                    listener,
                    event.type,
                    event.request_id,
                    exc,
                )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def create(
        self,
        request_id: str,
        user_id: str,
        ticket: AdmissionTicket | None = None,
    ) -> SessionSnapshot:
        now = self._clock()
        with self._table_lock:
            if request_id in self._sessions:
                raise DuplicateSession(request_id)
            session = StreamSession(
                request_id=request_id,
                user_id=user_id,
                started_at=now,
                last_activity=now,
                ticket=ticket,
            )
            self._sessions[request_id] = session
            total = len(self._sessions)
        logger.info("Stream created: %s (total live: %d)", request_id, total)
        return session.snapshot()

    def _require(self, request_id: str) -> StreamSession:
        with self._table_lock:
            session = self._sessions.get(request_id)
        if session is None:
            raise UnknownSession(request_id)
        return session

    def emit(self, request_id: str, content: str, is_final: bool = False) -> StreamChunk:
        """
        Append ``content`` to the session and publish it.

        Raises :class:`UnknownSession` for an unknown id and
        :class:`SessionAlreadyTerminal` once the session has completed or failed.
        """
        session = self._require(request_id)
        with session.lock:
            if session.state.terminal:
                raise SessionAlreadyTerminal(request_id, session.state.value)

            now = self._clock()
            chunk = StreamChunk(content=content, sequence=len(session.chunks), timestamp=now)
            session.chunks.append(chunk)
            session.last_activity = now
            if is_final:
                session.finish(SessionState.COMPLETED, now)
            else:
                session.state = SessionState.EMITTING

            self._publish(
                StreamEvent(
                    type="chunk",
                    request_id=request_id,
                    user_id=session.user_id,
                    chunk=chunk,
                    is_final=is_final,
                    duration=session.duration,
                )
            )

        logger.debug(
            "Chunk %d for %s: %d chars, final: %s",
            chunk.sequence,
            request_id,
            len(content),
            is_final,
        )
        return chunk

    def fail(self, request_id: str, error: BaseException | str) -> bool:
        """Mark the session failed; returns ``False`` if unknown or already terminal."""

        with self._table_lock:
            session = self._sessions.get(request_id)
        if session is None:
            logger.warning("Ignoring failure for unknown stream %s: %s", request_id, error)
            return False

        message = str(error) or type(error).__name__
        with session.lock:
            if session.state.terminal:
                logger.debug("Duplicate failure signal for %s ignored", request_id)
                return False
            session.error = message
            session.finish(SessionState.FAILED, self._clock())
            self._publish(
                StreamEvent(
                    type="error",
                    request_id=request_id,
                    user_id=session.user_id,
                    error=message,
                    duration=session.duration,
                )
            )

        logger.error("Stream %s failed: %s", request_id, message)
        return True

    def close(self, request_id: str, immediate: bool = False) -> bool:
        """
        Finish the session (forcing ``COMPLETED`` if needed), release its
        admission ticket and schedule removal from the live table.
        """
        with self._table_lock:
            session = self._sessions.get(request_id)
        if session is None:
            return False

        with session.lock:
            now = self._clock()
            if not session.state.terminal:
                session.finish(SessionState.COMPLETED, now)
            session.last_activity = now
            ticket = session.ticket
            self._publish(
                StreamEvent(
                    type="close",
                    request_id=request_id,
                    user_id=session.user_id,
                    error=session.error,
                    duration=session.duration,
                )
            )

        if ticket is not None:
            ticket.release()

        if immediate:
            self._remove(request_id)
        else:
            self._schedule_removal(request_id, self.cleanup_timeout)

        logger.info("Stream closed: %s, duration: %.3fs", request_id, session.duration or 0.0)
        return True

    def _schedule_removal(self, request_id: str, delay: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop; the reaper removes it once idle past the cleanup timeout.
            return
        previous = self._removals.pop(request_id, None)
        if previous is not None:
            previous.cancel()
        self._removals[request_id] = loop.call_later(delay, self._remove, request_id)

    def _remove(self, request_id: str) -> None:
        handle = self._removals.pop(request_id, None)
        if handle is not None:
            handle.cancel()
        with self._table_lock:
            session = self._sessions.pop(request_id, None)
        if session is None:
            return
        if session.ticket is not None:
            session.ticket.release()
        logger.info("Stream cleaned up: %s", request_id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get(self, request_id: str) -> SessionSnapshot | None:
        with self._table_lock:
            session = self._sessions.get(request_id)
        if session is None:
            return None
        with session.lock:
            return session.snapshot()

    def history(self, request_id: str, after_sequence: int = -1) -> list[StreamChunk]:
        """Chunks with a sequence above ``after_sequence`` (for reconnect replay)."""

        session = self._require(request_id)
        with session.lock:
            return [c for c in session.chunks if c.sequence > after_sequence]

    def list_active(self) -> list[SessionSnapshot]:
        with self._table_lock:
            sessions = list(self._sessions.values())
        snapshots = []
        for session in sessions:
            with session.lock:
                snapshots.append(session.snapshot())
        return snapshots

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._sessions)

    def __contains__(self, request_id: object) -> bool:
        with self._table_lock:
            return request_id in self._sessions

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        snapshots = self.list_active()
        finished = [s for s in snapshots if s.completed and s.duration is not None]
        average = sum(s.duration for s in finished) / len(finished) if finished else 0.0
        return {
            "live": len(snapshots),
            "completed": sum(1 for s in snapshots if s.state is SessionState.COMPLETED),
            "failed": sum(1 for s in snapshots if s.state is SessionState.FAILED),
            "average_duration": round(average, 3),
            "oldest_age": max((now - s.started_at for s in snapshots), default=0.0),
        }

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    def reap(self) -> int:
        """
        Remove terminal sessions idle past the cleanup timeout.

        Non-terminal sessions are never removed; those older than the
        long-lived threshold are logged as possible leaks.
        """
        now = self._clock()
        idle_cutoff = now - self.cleanup_timeout
        removable: list[str] = []
        for snap in self.list_active():
            if snap.completed:
                if snap.last_activity < idle_cutoff:
                    removable.append(snap.request_id)
            elif now - snap.started_at > self.long_lived_threshold:
                logger.warning(
                    "Stream %s for user %s still open after %.0fs (%d chunks)",
                    snap.request_id,
                    snap.user_id,
                    now - snap.started_at,
                    len(snap.chunks),
                )

        for request_id in removable:
            self._remove(request_id)
        if removable:
            logger.info("Reaped %d inactive streams", len(removable))
        return len(removable)

    async def start(self, interval: float | None = None) -> asyncio.Task:
        if not self._reap_task or self._reap_task.done():
            every = interval or stream_cfg.REAP_INTERVAL
            logger.info("Starting stream reaper (interval=%ss)", every)
            self._reap_task = await _startup(self.reap, every, name="stream-reaper")
        return self._reap_task

    async def stop(self) -> None:
        """Cancel the reaper and every pending removal timer."""

        if self._reap_task:
            await _shutdown(self._reap_task)
            self._reap_task = None
        for handle in self._removals.values():
            handle.cancel()
        self._removals.clear()
