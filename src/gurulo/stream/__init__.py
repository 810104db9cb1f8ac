"""
Stream session package.

Modules
=======

``manager``
    :class:`~gurulo.stream.manager.StreamSessionManager` owns the live
    session table, serialises chunk emission and reaps idle sessions.
``session``
    Session, chunk and event types plus the ``CREATED -> EMITTING ->
    COMPLETED | FAILED`` state enum.
``admission``
    Fixed-window per-client admission limiter for long-lived connections.
``delivery``
    Word chunking and Server-Sent Events framing for transports.
"""

from .admission import AdmissionLimiter, AdmissionTicket
from .delivery import SSEChannel, chunk_words, format_sse
from .manager import StreamSessionManager
from .session import SessionSnapshot, SessionState, StreamChunk, StreamEvent

__all__ = [
    "AdmissionLimiter",
    "AdmissionTicket",
    "SSEChannel",
    "SessionSnapshot",
    "SessionState",
    "StreamChunk",
    "StreamEvent",
    "StreamSessionManager",
    "chunk_words",
    "format_sse",
]
