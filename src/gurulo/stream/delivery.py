"""
Delivery helpers bridging stream sessions to a Server-Sent Events transport.

``chunk_words`` splits an already generated response into word chunks,
``format_sse`` encodes a single SSE frame, and :class:`SSEChannel` is a
session listener that queues the frames for one request so an HTTP handler
can drain them with ``async for``.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, AsyncIterator, Callable

from gurulo.config import stream as stream_cfg

from .session import StreamEvent

_LINE_SPLIT = re.compile(r"\r?\n")


def chunk_words(text: str, words_per_chunk: int | None = None) -> list[str]:
    """
    Split ``text`` into chunks of ``words_per_chunk`` words.

    Every chunk except the last keeps a trailing space, so joining the chunks
    reproduces the text with whitespace collapsed.
    """
    if words_per_chunk is None:
        words_per_chunk = stream_cfg.WORDS_PER_CHUNK
    if words_per_chunk < 1:
        raise ValueError("words_per_chunk must be >= 1")
    words = text.split()
    if not words:
        return []
    chunks = [
        " ".join(words[i:i + words_per_chunk])
        for i in range(0, len(words), words_per_chunk)
    ]
    return [c + " " for c in chunks[:-1]] + [chunks[-1]]


def format_sse(event: str, data: Any, event_id: int | str | None = None) -> str:
    """Encode one SSE frame; multi-line data becomes several ``data:`` lines."""

    if isinstance(data, (dict, list)):
        text = json.dumps(data, ensure_ascii=False)
    else:
        text = "" if data is None else str(data)

    lines: list[str] = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.extend(f"data: {line}" for line in _LINE_SPLIT.split(text))
    return "\n".join(lines) + "\n\n"


class SSEChannel:
    """
    Listener that buffers SSE frames for a single request.

    Attach with ``channel.attach(manager)``; the channel detaches itself once
    the session closes or fails.
    """

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._ended = False
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, manager) -> "SSEChannel":
        self._unsubscribe = manager.subscribe(self)
        return self

    def __call__(self, event: StreamEvent) -> None:
        if event.request_id != self.request_id or self._ended:
            return

        if event.type == "chunk" and event.chunk is not None:
            self._queue.put_nowait(
                format_sse("chunk", event.chunk.content, event_id=event.chunk.sequence)
            )
            if event.is_final:
                self._finish(format_sse("end", "complete"))
        elif event.type == "error":
            self._finish(format_sse("error", event.error or "Streaming failed"))
        elif event.type == "close":
            self._finish(format_sse("end", "complete"))

    def _finish(self, frame: str) -> None:
        self._ended = True
        self._queue.put_nowait(frame)
        self._queue.put_nowait(None)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


__all__ = ["chunk_words", "format_sse", "SSEChannel"]
