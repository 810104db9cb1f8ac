"""
Memory snapshot schema and validation.

Shared by the sync queue (validation before write), the read-side store
(corruption detection) and fact extraction (merging new facts).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gurulo.config import sync as sync_cfg
from gurulo.errors import ValidationFailed

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemorySnapshot(BaseModel):
    """Per-user memory document persisted as JSON."""

    # Unknown top-level keys are dropped at the boundary.
    model_config = ConfigDict(extra="ignore")

    user_id: str = ""
    facts: list[str] = Field(default_factory=list)
    personal_info: dict[str, Any] = Field(default_factory=dict)
    preferences: dict[str, Any] = Field(default_factory=dict)
    interaction_history: list[Any] = Field(default_factory=list)
    stats: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    last_updated: str | None = None
    total_facts: int = 0
    repaired: bool = False
    repaired_at: str | None = None
    fallback_used: bool = False

    @field_validator("facts", mode="before")
    @classmethod
    def _facts_are_strings(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError("facts must be a list")
        for index, fact in enumerate(value):
            if not isinstance(fact, str) or not fact.strip():
                raise ValueError(f"corrupted fact at index {index}")
        return list(value)


def validate_snapshot(
    data: Any,
    *,
    user_id: str | None = None,
    max_bytes: int | None = None,
) -> MemorySnapshot:
    """
    Return a validated :class:`MemorySnapshot` for ``data``.

    Raises :class:`ValidationFailed` when ``data`` is not a mapping, is not
    JSON serialisable (including circular references), exceeds ``max_bytes``
    once encoded, or does not match the schema.
    """
    if isinstance(data, MemorySnapshot):
        data = data.model_dump()
    if not isinstance(data, Mapping):
        raise ValidationFailed(f"memory data is {type(data).__name__}, expected an object")

    try:
        encoded = json.dumps(data)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f"memory data is not serialisable: {exc}") from exc

    limit = max_bytes if max_bytes is not None else sync_cfg.MAX_SNAPSHOT_BYTES
    size = len(encoded.encode("utf-8"))
    if size > limit:
        raise ValidationFailed(f"memory data too large: {size} bytes > {limit}")

    try:
        snapshot = MemorySnapshot.model_validate(dict(data))
    except ValidationError as exc:
        raise ValidationFailed(f"memory data failed schema validation: {exc}") from exc

    if user_id and not snapshot.user_id:
        snapshot.user_id = user_id
    return snapshot


def is_valid_snapshot(data: Any, **kwargs: Any) -> bool:
    try:
        validate_snapshot(data, **kwargs)
    except ValidationFailed:
        return False
    return True


def empty_snapshot(user_id: str, **overrides: Any) -> MemorySnapshot:
    now = utc_now()
    return MemorySnapshot(user_id=user_id, created_at=now, last_updated=now, **overrides)


def fallback_snapshot(user_id: str) -> MemorySnapshot:
    """Minimal safe snapshot written in place of a malformed one."""

    logger.info("Generating fallback memory snapshot for user %s", user_id)
    return empty_snapshot(user_id, fallback_used=True)


__all__ = [
    "MemorySnapshot",
    "validate_snapshot",
    "is_valid_snapshot",
    "empty_snapshot",
    "fallback_snapshot",
    "utc_now",
]
