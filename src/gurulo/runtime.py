"""
Request lifecycle for the assistant: generate -> cache -> stream -> persist.

:class:`AssistantRuntime` wires the response cache, the stream session
manager with its admission limiter, and the memory sync queue together.
Every component is injectable so tests can build isolated runtimes.
"""

from __future__ import annotations

import asyncio
import logging
import textwrap
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

from gurulo.cache import ResponseCache
from gurulo.config import core, sync as sync_cfg
from gurulo.errors import (
    DuplicateSession,
    GenerationFailed,
    SessionAlreadyTerminal,
    UnknownSession,
)
from gurulo.memory import (
    MemoryStore,
    MemorySyncQueue,
    MirroredWriter,
    SnapshotLocation,
    extract_and_queue_facts,
)
from gurulo.stream import AdmissionLimiter, StreamSessionManager

logger = logging.getLogger(__name__)

Generator = Callable[[list[dict[str, str]], str], AsyncIterator[str]]


@dataclass(frozen=True, slots=True)
class ServeResult:
    payload: str
    from_cache: bool
    key: str
    request_id: str | None = None
    partial: bool = False


def _default_generator() -> Generator:
    from gurulo.clients import oai

    return oai.stream_chat


class AssistantRuntime:
    def __init__(
        self,
        *,
        cache: ResponseCache | None = None,
        streams: StreamSessionManager | None = None,
        admission: AdmissionLimiter | None = None,
        sync_queue: MemorySyncQueue | None = None,
        memory: MemoryStore | None = None,
        generator: Generator | None = None,
    ) -> None:
        primary = SnapshotLocation(sync_cfg.PRIMARY_DIR, "primary")
        self.cache = cache or ResponseCache()
        self.streams = streams or StreamSessionManager()
        self.admission = admission or AdmissionLimiter()
        self.sync_queue = sync_queue or MemorySyncQueue(
            MirroredWriter(primary, SnapshotLocation(sync_cfg.MIRROR_DIR, "mirror"))
        )
        self.memory = memory or MemoryStore(self.sync_queue.writer.primary)
        self._generator = generator

    @property
    def generator(self) -> Generator:
        if self._generator is None:
            self._generator = _default_generator()
        return self._generator

    # ------------------------------------------------------------------ #
    # Inbound operations
    # ------------------------------------------------------------------ #

    async def generate_or_serve(
        self,
        message: str,
        user_id: str,
        model: str | None = None,
        request_type: str | None = None,
        *,
        client_key: str | None = None,
        request_id: str | None = None,
    ) -> ServeResult:
        """
        Serve ``message`` from the response cache or generate it as a stream.

        Raises :class:`~gurulo.errors.AdmissionRefused` when the client has
        too many open streams and :class:`~gurulo.errors.GenerationFailed`
        when the model produced nothing usable.
        """
        model = model or core.MSG_MODEL_ID
        request_type = request_type or core.DEFAULT_REQUEST_TYPE
        key = self.cache.key_for(message, user_id, model, request_type)

        hit = self.cache.get(key)
        if hit is not None and hit.metadata.get("partial"):
            logger.info("Cached response for user %s is truncated; regenerating", user_id)
            hit = None
        if hit is not None:
            logger.info("Cache hit for user %s (accessed %d times)", user_id, hit.access_count)
            return ServeResult(payload=hit.payload.text, from_cache=True, key=key)

        ticket = self.admission.admit(client_key or user_id)
        request_id = request_id or uuid.uuid4().hex
        try:
            self.streams.create(request_id, user_id, ticket=ticket)
        except DuplicateSession:
            ticket.release()
            raise

        emitted: list[str] = []
        try:
            interrupted = await self._pump(
                request_id, self._build_messages(message, user_id), model, emitted
            )
        except asyncio.CancelledError:
            self.streams.close(request_id)
            raise
        except GenerationFailed as exc:
            self.streams.fail(request_id, exc)
            self.streams.close(request_id)
            raise
        except Exception as exc:
            self.streams.fail(request_id, exc)
            self.streams.close(request_id)
            raise GenerationFailed(f"Generation failed for request {request_id}: {exc}") from exc

        if not interrupted:
            self.streams.close(request_id)
        text = "".join(emitted)
        if not text.strip():
            raise GenerationFailed(f"Empty response for request {request_id}")

        self.cache.put(
            key,
            text,
            {
                "user_id": user_id,
                "model": model,
                "type": request_type,
                "request_id": request_id,
                "partial": interrupted,
            },
        )
        self._update_conversation(user_id, message, text)
        return ServeResult(
            payload=text,
            from_cache=False,
            key=key,
            request_id=request_id,
            partial=interrupted,
        )

    async def _pump(
        self,
        request_id: str,
        messages: list[dict[str, str]],
        model: str,
        emitted: list[str],
    ) -> bool:
        """
        Emit generator output into the session, holding one delta back so the
        last one can carry the final flag. Emitted text is collected in
        ``emitted``. Returns ``True`` if the session was closed (or already
        removed) before generation finished.
        """
        pending: str | None = None
        try:
            async for delta in self.generator(messages, model):
                if not delta:
                    continue
                if pending is not None:
                    self.streams.emit(request_id, pending)
                    emitted.append(pending)
                pending = delta
            if pending is None:
                raise GenerationFailed(f"Empty response for request {request_id}")
            self.streams.emit(request_id, pending, is_final=True)
            emitted.append(pending)
        except (SessionAlreadyTerminal, UnknownSession):
            logger.info("Stream %s closed by client; stopping generation", request_id)
            return True
        return False

    def _build_messages(self, message: str, user_id: str) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": core.SYSTEM_PROMPT}]
        summary = self.cache.get_conversation_summary(user_id)
        if summary is not None:
            messages.append(
                {"role": "system", "content": f"Conversation so far:\n{summary.summary}"}
            )
        messages.append({"role": "user", "content": message})
        return messages

    def _update_conversation(self, user_id: str, message: str, response: str) -> None:
        previous = self.cache.get_conversation_summary(user_id)
        turn = (
            f"user: {textwrap.shorten(message, width=200, placeholder='…')}\n"
            f"assistant: {textwrap.shorten(response, width=200, placeholder='…')}"
        )
        summary = f"{previous.summary}\n{turn}" if previous else turn
        count = previous.message_count + 1 if previous else 1
        self.cache.put_conversation_summary(
            user_id,
            summary[-core.SUMMARY_MAX_CHARS:],
            {"last_message": message[:200]},
            message_count=count,
        )

    async def extract_and_queue_facts(self, user_id: str, text: str) -> list[str]:
        return await extract_and_queue_facts(user_id, text, self.memory, self.sync_queue)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self, interval: float | None = None) -> None:
        """
        Schedule cache sweep, stream reaping, admission purge and memory sync
        drain. ``interval`` overrides every configured cycle length.
        """
        await self.cache.start(interval)
        await self.streams.start(interval)
        await self.admission.start(interval)
        await self.sync_queue.start(interval)

    async def stop(self) -> None:
        """Cancel background work and flush the sync queue once."""

        await self.cache.stop()
        await self.streams.stop()
        await self.admission.stop()
        await self.sync_queue.stop()
        if len(self.sync_queue):
            await self.sync_queue.drain()

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "streams": self.streams.stats(),
            "admission": self.admission.stats(),
            "sync": self.sync_queue.stats(),
        }


__all__ = ["AssistantRuntime", "ServeResult"]
