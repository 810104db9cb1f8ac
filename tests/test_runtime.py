import asyncio
import json
import time

import pytest

from gurulo.cache import ResponseCache
from gurulo.errors import AdmissionRefused, GenerationFailed
from gurulo.memory import MemoryStore, MemorySyncQueue, MirroredWriter, SnapshotLocation
from gurulo.runtime import AssistantRuntime
from gurulo.stream import AdmissionLimiter, SessionState, StreamSessionManager


class ScriptedModel:
    """Stands in for the chat completion stream."""

    def __init__(self, *deltas, error=None):
        self.deltas = deltas
        self.error = error
        self.calls = []

    async def __call__(self, messages, model):
        self.calls.append((messages, model))
        for delta in self.deltas:
            await asyncio.sleep(0)
            yield delta
        if self.error is not None:
            raise self.error


@pytest.fixture
def build(tmp_path):
    def _build(generator, *, limit=5, clock=time.time):
        primary = SnapshotLocation(tmp_path / "memory", "primary")
        mirror = SnapshotLocation(tmp_path / "memory_mirror", "mirror")
        queue = MemorySyncQueue(MirroredWriter(primary, mirror))
        return AssistantRuntime(
            cache=ResponseCache(),
            streams=StreamSessionManager(),
            admission=AdmissionLimiter(limit=limit, window=60, clock=clock),
            sync_queue=queue,
            memory=MemoryStore(primary),
            generator=generator,
        )

    return _build


@pytest.mark.asyncio
async def test_miss_streams_then_hit_serves_from_cache(build):
    model = ScriptedModel("Cottages ", "are ", "free.")
    runtime = build(model)

    first = await runtime.generate_or_serve("Is a cottage free?", "u1", request_id="r1")
    second = await runtime.generate_or_serve("  is a COTTAGE free? ", "u1")

    assert first.from_cache is False
    assert first.payload == "Cottages are free."
    assert second.from_cache is True
    assert second.payload == first.payload
    assert second.key == first.key
    assert len(model.calls) == 1

    snap = runtime.streams.get("r1")
    assert snap.state is SessionState.COMPLETED
    assert [c.content for c in snap.chunks] == ["Cottages ", "are ", "free."]
    assert runtime.admission.active("u1") == 0


@pytest.mark.asyncio
async def test_conversation_summary_feeds_next_prompt(build):
    model = ScriptedModel("Sure.")
    runtime = build(model)

    await runtime.generate_or_serve("first question", "u1")
    await runtime.generate_or_serve("second question", "u1")

    summary = runtime.cache.get_conversation_summary("u1")
    assert summary.message_count == 2
    assert "first question" in summary.summary

    messages, _ = model.calls[1]
    assert messages[0]["role"] == "system"
    assert any("first question" in m["content"] for m in messages[1:-1])
    assert messages[-1] == {"role": "user", "content": "second question"}


@pytest.mark.asyncio
async def test_admission_refused_before_any_session(build):
    runtime = build(ScriptedModel("x"), limit=1)
    runtime.admission.admit("1.2.3.4")

    with pytest.raises(AdmissionRefused):
        await runtime.generate_or_serve("hello", "u1", client_key="1.2.3.4")

    assert len(runtime.streams) == 0


@pytest.mark.asyncio
async def test_generation_error_fails_session_and_is_not_cached(build):
    runtime = build(ScriptedModel("partial ", error=RuntimeError("upstream reset")))

    with pytest.raises(GenerationFailed) as excinfo:
        await runtime.generate_or_serve("hello", "u1", request_id="r1")

    assert excinfo.value.user_facing
    snap = runtime.streams.get("r1")
    assert snap.state is SessionState.FAILED
    assert "upstream reset" in snap.error
    assert runtime.cache.stats()["responses"]["size"] == 0
    assert runtime.admission.active("u1") == 0


@pytest.mark.asyncio
async def test_empty_generation_fails(build):
    runtime = build(ScriptedModel("", ""))

    with pytest.raises(GenerationFailed):
        await runtime.generate_or_serve("hello", "u1", request_id="r1")

    assert runtime.streams.get("r1").state is SessionState.FAILED


@pytest.mark.asyncio
async def test_client_close_mid_stream_keeps_partial_response(build):
    runtime = build(ScriptedModel("one ", "two ", "three ", "four"))

    def close_after_second_chunk(event):
        if event.type == "chunk" and event.chunk.sequence == 1:
            runtime.streams.close(event.request_id, immediate=True)

    runtime.streams.subscribe(close_after_second_chunk)

    result = await runtime.generate_or_serve("count", "u1", request_id="r1")

    assert result.partial is True
    assert result.payload == "one two "
    assert "r1" not in runtime.streams
    assert runtime.cache.get(result.key).metadata["partial"] is True


@pytest.mark.asyncio
async def test_facts_are_queued_and_flushed_on_stop(build, tmp_path):
    runtime = build(ScriptedModel("ok"))

    added = await runtime.extract_and_queue_facts("u1", "I live in Mestia. I have a car.")
    assert added == ["lives in Mestia", "has a car"]
    assert len(runtime.sync_queue) == 1

    await runtime.start()
    await runtime.stop()

    assert len(runtime.sync_queue) == 0
    for folder in ("memory", "memory_mirror"):
        data = json.loads((tmp_path / folder / "u1.json").read_text())
        assert data["facts"] == ["lives in Mestia", "has a car"]


@pytest.mark.asyncio
async def test_stats_cover_every_component(build):
    runtime = build(ScriptedModel("x"))
    await runtime.generate_or_serve("hello", "u1")

    stats = runtime.stats()

    assert set(stats) == {"cache", "streams", "admission", "sync"}
    assert stats["cache"]["responses"]["sets"] == 1
    assert stats["streams"]["completed"] == 1


@pytest.mark.asyncio
async def test_truncated_cache_entry_is_regenerated(build):
    model = ScriptedModel("one ", "two ", "three ", "four")
    runtime = build(model)

    def close_first_request(event):
        if event.request_id == "r1" and event.type == "chunk" and event.chunk.sequence == 1:
            runtime.streams.close("r1", immediate=True)

    runtime.streams.subscribe(close_first_request)

    truncated = await runtime.generate_or_serve("count", "u1", request_id="r1")
    full = await runtime.generate_or_serve("count", "u1", request_id="r2")
    cached = await runtime.generate_or_serve("count", "u1")

    assert truncated.partial is True
    assert full.from_cache is False
    assert full.partial is False
    assert full.payload == "one two three four"
    assert cached.from_cache is True
    assert cached.payload == "one two three four"
    assert len(model.calls) == 2


@pytest.mark.asyncio
async def test_runtime_maintenance_purges_idle_admission_records(build, clock):
    runtime = build(ScriptedModel("ok"), clock=clock)
    for n in range(3):
        await runtime.generate_or_serve(f"question {n}", f"user-{n}")
    assert runtime.admission.stats()["clients"] == 3

    clock.advance(61)
    await runtime.start(interval=0.01)
    for _ in range(50):
        if not runtime.admission.stats()["clients"]:
            break
        await asyncio.sleep(0.01)
    await runtime.stop()

    assert runtime.admission.stats()["clients"] == 0
