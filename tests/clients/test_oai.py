import types

import pytest

from gurulo.clients import oai


def _event(content):
    delta = types.SimpleNamespace(content=content)
    return types.SimpleNamespace(choices=[types.SimpleNamespace(delta=delta)])


class FakeCompletions:
    def __init__(self, events):
        self.events = events
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs

        async def _stream():
            for event in self.events:
                yield event

        return _stream()


@pytest.mark.asyncio
async def test_stream_chat_yields_non_empty_deltas(monkeypatch):
    completions = FakeCompletions(
        [_event("Hel"), _event(None), types.SimpleNamespace(choices=[]), _event("lo")]
    )
    fake_client = types.SimpleNamespace(chat=types.SimpleNamespace(completions=completions))
    monkeypatch.setattr(oai, "aoai", fake_client)

    messages = [{"role": "user", "content": "hi"}]
    deltas = [d async for d in oai.stream_chat(messages)]

    assert deltas == ["Hel", "lo"]
    assert completions.kwargs["stream"] is True
    assert completions.kwargs["model"] == oai.core.MSG_MODEL_ID
    assert completions.kwargs["messages"] == messages
