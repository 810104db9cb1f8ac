"""Deterministic cache keys for generation requests."""

from __future__ import annotations

import hashlib
import json
import re

_WS = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    """Collapse whitespace and case-fold so equivalent queries share a key."""

    return _WS.sub(" ", message or "").strip().casefold()


def fingerprint(
    message: str,
    user_id: str | None,
    model: str | None = None,
    request_type: str | None = None,
) -> str:
    """Return the SHA-256 hex digest of the canonical request fields."""

    key_data = {
        "message": normalize_message(message),
        "user_id": str(user_id) if user_id else "anonymous",
        "model": model or "default",
        "type": request_type or "chat",
    }
    canonical = json.dumps(key_data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["fingerprint", "normalize_message"]
