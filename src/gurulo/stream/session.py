"""
Stream session state.

A :class:`StreamSession` records every chunk emitted for one in-flight
response. Sessions move ``CREATED -> EMITTING -> COMPLETED | FAILED``; both
terminal states are final. Only :class:`~gurulo.stream.manager.StreamSessionManager`
mutates sessions; everyone else sees :class:`SessionSnapshot` copies.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .admission import AdmissionTicket


class SessionState(str, Enum):
    CREATED = "created"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


@dataclass(frozen=True, slots=True)
class StreamChunk:
    content: str
    sequence: int
    timestamp: float


@dataclass(slots=True)
class StreamSession:
    request_id: str
    user_id: str
    started_at: float
    last_activity: float
    state: SessionState = SessionState.CREATED
    chunks: list[StreamChunk] = field(default_factory=list)
    ended_at: float | None = None
    error: str | None = None
    ticket: "AdmissionTicket | None" = field(default=None, repr=False)
    # Reentrant so listeners may close the session from inside emit().
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def completed(self) -> bool:
        return self.state.terminal

    @property
    def duration(self) -> float | None:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def finish(self, state: SessionState, now: float) -> None:
        self.state = state
        self.ended_at = now
        self.last_activity = now

    def snapshot(self) -> "SessionSnapshot":
        return SessionSnapshot(
            request_id=self.request_id,
            user_id=self.user_id,
            state=self.state,
            chunks=tuple(self.chunks),
            started_at=self.started_at,
            ended_at=self.ended_at,
            last_activity=self.last_activity,
            error=self.error,
        )


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Immutable view of a session at a point in time."""

    request_id: str
    user_id: str
    state: SessionState
    chunks: tuple[StreamChunk, ...]
    started_at: float
    ended_at: float | None
    last_activity: float
    error: str | None

    @property
    def completed(self) -> bool:
        return self.state.terminal

    @property
    def text(self) -> str:
        return "".join(chunk.content for chunk in self.chunks)

    @property
    def duration(self) -> float | None:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def as_dict(self, now: float) -> dict[str, Any]:
        return {
            "id": self.request_id,
            "user_id": self.user_id,
            "state": self.state.value,
            "chunks": len(self.chunks),
            "completed": self.completed,
            "started_at": self.started_at,
            "duration": self.duration if self.duration is not None else now - self.started_at,
            "idle": now - self.last_activity,
            "error": self.error,
        }


EventType = Literal["chunk", "error", "close"]


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """Published to listeners on every session transition that carries output."""

    type: EventType
    request_id: str
    user_id: str
    chunk: StreamChunk | None = None
    is_final: bool = False
    error: str | None = None
    duration: float | None = None


__all__ = [
    "SessionState",
    "StreamChunk",
    "StreamSession",
    "SessionSnapshot",
    "StreamEvent",
]
