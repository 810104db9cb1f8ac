"""Helpers for interacting with OpenAI API"""
from typing import AsyncIterator

from openai import AsyncOpenAI
from gurulo.config import core

import logging
logger = logging.getLogger(__name__)

# One global async-capable client
aoai = AsyncOpenAI(api_key=core.OPENAI_API_KEY)


async def stream_chat(
    messages: list[dict],
    model: str | None = None,
) -> AsyncIterator[str]:
    """
    Stream a chat completion from OpenAI, yielding text deltas as they arrive.

    Example message format:
    .. code-block:: python
        [
            {
                "role": "system",
                "content": "You are a helpful assistant."
            },
            {
                "role": "user",
                "content": "Hello, how are you?"
            }
        ]
    """
    use_model = model or core.MSG_MODEL_ID
    stream = await aoai.chat.completions.create(
        model=use_model,
        messages=messages,
        stream=True,
    )

    async for event in stream:
        if not event.choices:
            continue
        delta = event.choices[0].delta.content
        if delta:
            yield delta
