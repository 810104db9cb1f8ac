import json

import pytest

from gurulo.memory import MemoryStore


@pytest.mark.asyncio
async def test_missing_document_is_created_empty(primary, clock):
    store = MemoryStore(primary, clock=clock)

    snap = await store.load("u1")

    assert snap.user_id == "u1"
    assert snap.facts == []
    assert primary.exists("u1")


@pytest.mark.asyncio
async def test_valid_document_is_loaded(primary, clock):
    primary.write("u1", json.dumps({"user_id": "u1", "facts": ["has a dog named Jeka"]}))
    store = MemoryStore(primary, clock=clock)

    assert await store.get_facts("u1") == ["has a dog named Jeka"]


@pytest.mark.parametrize(
    "contents",
    [
        "{not json",
        json.dumps({"user_id": "u1", "facts": "should be a list"}),
        json.dumps({"user_id": "u1", "facts": ["ok", None]}),
        json.dumps(["not", "an", "object"]),
    ],
)
def test_corrupted_document_is_archived_and_replaced(primary, clock, contents):
    primary.write("u1", contents)
    store = MemoryStore(primary, clock=clock)

    snap = store.load_blocking("u1")

    assert snap.repaired is True
    assert snap.repaired_at is not None
    assert snap.facts == []

    backups = list(primary.root.glob("u1.json.corrupted.*"))
    assert len(backups) == 1
    assert backups[0].name == f"u1.json.corrupted.{int(clock.now * 1000)}"
    assert backups[0].read_text() == contents

    persisted = json.loads(primary.read("u1"))
    assert persisted["repaired"] is True
    assert persisted["facts"] == []


def test_unreadable_location_returns_empty_snapshot(blocked_mirror, clock):
    store = MemoryStore(blocked_mirror, clock=clock)
    snap = store.load_blocking("u1")
    assert snap.user_id == "u1"
    assert snap.facts == []


def test_undecodable_document_is_repaired(primary, clock):
    primary.root.mkdir(parents=True)
    raw = b'{"facts": ["\xff\xfe"]}'
    primary.path_for("u2").write_bytes(raw)
    store = MemoryStore(primary, clock=clock)

    snap = store.load_blocking("u2")

    assert snap.repaired is True
    assert snap.facts == []
    backups = list(primary.root.glob("u2.json.corrupted.*"))
    assert len(backups) == 1
    assert backups[0].read_bytes() == raw
    assert json.loads(primary.read("u2"))["repaired"] is True
