"""Two-level cache coordinating full responses and conversation summaries."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from gurulo.config import cache as cache_cfg
from gurulo.maintenance import startup as _startup, shutdown as _shutdown

from .entry import CachedResponse, CacheHit, ConversationSummary
from .fingerprint import fingerprint
from .store import TTLCache

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    Owns the response cache and the conversation cache.

    The two stores have independent capacity and TTL settings and never share
    eviction state. Construct one per runtime; tests build isolated instances.
    """

    def __init__(
        self,
        *,
        response_size: int | None = None,
        response_ttl: float | None = None,
        conversation_size: int | None = None,
        conversation_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.responses = TTLCache(
            "response",
            response_size or cache_cfg.RESPONSE_CACHE_SIZE,
            response_ttl or cache_cfg.RESPONSE_TTL,
            clock=clock,
        )
        self.conversations = TTLCache(
            "conversation",
            conversation_size or cache_cfg.CONVERSATION_CACHE_SIZE,
            conversation_ttl or cache_cfg.CONVERSATION_TTL,
            clock=clock,
        )
        self._sweep_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ #
    # Responses
    # ------------------------------------------------------------------ #

    @staticmethod
    def key_for(
        message: str,
        user_id: str | None,
        model: str | None = None,
        request_type: str | None = None,
    ) -> str:
        return fingerprint(message, user_id, model, request_type)

    def get(self, key: str) -> CacheHit | None:
        return self.responses.get(key)

    def put(self, key: str, payload: CachedResponse | str, metadata: dict[str, Any] | None = None) -> bool:
        if isinstance(payload, str):
            payload = CachedResponse(payload)
        return self.responses.put(key, payload, metadata)

    # ------------------------------------------------------------------ #
    # Conversation summaries
    # ------------------------------------------------------------------ #

    @staticmethod
    def _conversation_key(user_id: str) -> str:
        return f"conv_{user_id}"

    def get_conversation_summary(self, user_id: str) -> ConversationSummary | None:
        hit = self.conversations.get(self._conversation_key(user_id))
        if hit is None:
            return None
        return hit.payload  # type: ignore[return-value]

    def put_conversation_summary(
        self,
        user_id: str,
        summary: str,
        context: dict[str, Any] | None = None,
        message_count: int | None = None,
    ) -> bool:
        if not user_id:
            logger.warning("Rejected conversation summary without user id")
            return False
        context = dict(context or {})
        payload = ConversationSummary(
            summary=summary,
            context=context,
            message_count=message_count or int(context.get("message_count", 1)),
        )
        return self.conversations.put(self._conversation_key(user_id), payload, {"user_id": user_id})

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    def sweep(self) -> int:
        removed = self.responses.sweep() + self.conversations.sweep()
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
        return removed

    def clear(self) -> dict[str, int]:
        return {
            "responses": self.responses.clear(),
            "conversations": self.conversations.clear(),
        }

    def stats(self) -> dict[str, Any]:
        responses = self.responses.stats()
        conversations = self.conversations.stats()
        return {
            "responses": responses.as_dict(),
            "conversations": conversations.as_dict(),
            "hit_rate": round(responses.hit_rate, 4),
        }

    async def start(self, interval: float | None = None) -> asyncio.Task:
        """Schedule the periodic expiry sweep."""

        if not self._sweep_task or self._sweep_task.done():
            every = interval or cache_cfg.SWEEP_INTERVAL
            logger.info("Starting cache sweep (interval=%ss)", every)
            self._sweep_task = await _startup(self.sweep, every, name="cache-sweep")
        return self._sweep_task

    async def stop(self) -> None:
        if self._sweep_task:
            await _shutdown(self._sweep_task)
            self._sweep_task = None
