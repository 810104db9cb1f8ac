"""
Pattern-based fact extraction feeding the memory sync queue.

Facts are short third-person statements ("lives in Tbilisi") pulled from a
user's own first-person sentences. New facts are de-duplicated against what
is already known, merged into the user's snapshot and queued for persistence.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, TYPE_CHECKING

from gurulo.errors import ValidationFailed

from .schema import MemorySnapshot, utc_now, validate_snapshot

if TYPE_CHECKING:
    from .store import MemoryStore
    from .sync_queue import MemorySyncQueue

logger = logging.getLogger(__name__)

MAX_FACT_LENGTH = 100

_CLAUSE = r"([^.,!?;\n]+)"

_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], str]]] = [
    (
        re.compile(r"\bI have an? (dog|cat)(?:\s+(?:named|called)\s+([\w'-]+))?", re.I),
        lambda m: f"has a {m.group(1).lower()} named {m.group(2)}" if m.group(2) else f"has a {m.group(1).lower()}",
    ),
    (re.compile(r"\bI live in " + _CLAUSE, re.I), lambda m: f"lives in {m.group(1).strip()}"),
    (
        re.compile(r"\bI work (as|at|in|for) " + _CLAUSE, re.I),
        lambda m: f"works {m.group(1).lower()} {m.group(2).strip()}",
    ),
    (re.compile(r"\bI(?:'m| am) (\d{1,3}) years old", re.I), lambda m: f"age: {m.group(1)}"),
    (re.compile(r"\bI (?:really )?(?:love|like|enjoy) " + _CLAUSE, re.I), lambda m: f"likes {m.group(1).strip()}"),
    (re.compile(r"\bI have (?:a |an |\w+ )?(?:kids?|children|sons?|daughters?)\b", re.I), lambda m: "has children"),
    (re.compile(r"\bmy (?:wife|husband)\b", re.I), lambda m: "is married"),
    (re.compile(r"\bI have an? (?:car|vehicle)\b", re.I), lambda m: "has a car"),
    (
        re.compile(r"\bI (?:graduated from|studied at|study at|studied|study) " + _CLAUSE, re.I),
        lambda m: f"education: {m.group(1).strip()}",
    ),
]


def extract_facts(text: str) -> list[str]:
    """Return the facts found in ``text`` in pattern order, without duplicates."""

    if not text:
        return []
    found: list[str] = []
    for pattern, render in _PATTERNS:
        for match in pattern.finditer(text):
            fact = render(match).strip()
            if 0 < len(fact) < MAX_FACT_LENGTH and fact not in found:
                found.append(fact)
    return found


def dedupe_facts(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    """
    Drop facts already known, case-insensitively.

    A new fact is also dropped when it contains, or is contained in, a known
    fact ("likes hiking" vs "likes hiking in the mountains").
    """
    known = [f.casefold().strip() for f in existing]
    unique: list[str] = []
    for fact in new:
        lowered = fact.casefold().strip()
        if not lowered:
            continue
        if any(k == lowered or k in lowered or lowered in k for k in known):
            continue
        unique.append(fact)
        known.append(lowered)
    return unique


def merge_facts(snapshot: MemorySnapshot, facts: Iterable[str]) -> MemorySnapshot:
    """Return a copy of ``snapshot`` with ``facts`` appended."""

    merged = snapshot.model_copy(deep=True)
    merged.facts.extend(facts)
    merged.total_facts = len(merged.facts)
    merged.last_updated = utc_now()
    return merged


async def extract_and_queue_facts(
    user_id: str,
    text: str,
    store: "MemoryStore",
    queue: "MemorySyncQueue",
) -> list[str]:
    """
    Extract facts from ``text`` and queue the updated snapshot.

    The newest snapshot still waiting in ``queue`` takes precedence over the
    persisted one so back-to-back updates are not lost before a drain.
    Returns the facts that were actually added.
    """
    candidates = extract_facts(text)
    if not candidates:
        return []

    base: MemorySnapshot | None = None
    pending = queue.latest(user_id)
    if pending is not None:
        try:
            base = validate_snapshot(pending, user_id=user_id)
        except ValidationFailed as exc:
            logger.warning("Queued memory for user %s is invalid, reloading: %s", user_id, exc)
    if base is None:
        base = await store.load(user_id)

    added = dedupe_facts(base.facts, candidates)
    logger.info("Fact deduplication for user %s: %d -> %d unique facts", user_id, len(candidates), len(added))
    if not added:
        return []

    queue.enqueue(user_id, merge_facts(base, added), tag="facts")
    return added


__all__ = ["extract_facts", "dedupe_facts", "merge_facts", "extract_and_queue_facts"]
