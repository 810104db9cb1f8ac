"""
On-disk snapshot locations.

Each location is a directory of per-user JSON documents:
    <root>/<user_id>.json

Writes go to ``<file>.tmp`` first and are moved into place with
``os.replace`` so readers never observe a half-written document.
:class:`MirroredWriter` writes the same snapshot to two independent
locations and classifies the attempt as full, partial or failed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import quote

from gurulo.errors import StorageFailure

from .schema import MemorySnapshot

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[A-Za-z0-9_.@-]+")


class SnapshotLocation:
    """A directory holding one JSON document per user."""

    def __init__(self, root: str | Path, name: str | None = None) -> None:
        self.root = Path(root)
        self.name = name or self.root.name

    def path_for(self, user_id: str) -> Path:
        """
        Document path for ``user_id``.

        Ids made only of ``[A-Za-z0-9_.@-]`` are used as-is; anything else is
        percent-encoded. Encoded names always contain ``%``, so distinct ids
        never share a file.
        """
        user_id = str(user_id)
        if _SAFE_ID.fullmatch(user_id):
            return self.root / f"{user_id}.json"
        encoded = quote(user_id, safe="") or "%"
        return self.root / f"{encoded}.json"

    def exists(self, user_id: str) -> bool:
        return self.path_for(user_id).exists()

    def read(self, user_id: str) -> str | None:
        p = self.path_for(user_id)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def write(self, user_id: str, text: str) -> Path:
        p = self.path_for(user_id)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageFailure(f"could not create {p.parent}: {exc}") from exc

        tmp = p.with_name(p.name + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, p)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise StorageFailure(f"could not write {p}: {exc}") from exc
        return p

    def archive_corrupt(self, user_id: str, timestamp: int | None = None) -> Path | None:
        """Rename the user's document to ``<file>.corrupted.<timestamp>``."""

        p = self.path_for(user_id)
        if not p.exists():
            return None
        stamp = timestamp if timestamp is not None else int(time.time() * 1000)
        target = p.with_name(f"{p.name}.corrupted.{stamp}")
        os.replace(p, target)
        return target

    def __repr__(self) -> str:
        return f"SnapshotLocation({self.name!r}, {str(self.root)!r})"


class WriteOutcome(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(slots=True)
class WriteResult:
    outcome: WriteOutcome
    written: list[Path] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def durable(self) -> bool:
        """At least one location holds the snapshot."""

        return self.outcome is not WriteOutcome.FAILED


class MirroredWriter:
    """Writes snapshots to a primary and a mirror location."""

    def __init__(self, primary: SnapshotLocation, mirror: SnapshotLocation) -> None:
        self.primary = primary
        self.mirror = mirror

    @property
    def locations(self) -> tuple[SnapshotLocation, SnapshotLocation]:
        return (self.primary, self.mirror)

    async def write(self, user_id: str, snapshot: MemorySnapshot) -> WriteResult:
        text = snapshot.model_dump_json(indent=2)
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(loc.write, user_id, text) for loc in self.locations),
            return_exceptions=True,
        )

        written: list[Path] = []
        errors: dict[str, str] = {}
        for loc, outcome in zip(self.locations, outcomes):
            if isinstance(outcome, BaseException):
                errors[loc.name] = f"{type(outcome).__name__}: {outcome}"
            else:
                written.append(outcome)

        if not errors:
            logger.debug("Memory snapshot for %s written to both locations", user_id)
            return WriteResult(WriteOutcome.FULL, written, errors)

        if written:
            failed = ", ".join(f"{name} ({err})" for name, err in errors.items())
            logger.warning(
                "Partial memory sync for user %s: wrote %s, failed %s; locations need reconciliation",
                user_id,
                ", ".join(str(p) for p in written),
                failed,
            )
            return WriteResult(WriteOutcome.PARTIAL, written, errors)

        logger.error("Memory sync failed at every location for user %s: %s", user_id, errors)
        return WriteResult(WriteOutcome.FAILED, written, errors)


__all__ = ["SnapshotLocation", "MirroredWriter", "WriteOutcome", "WriteResult"]
