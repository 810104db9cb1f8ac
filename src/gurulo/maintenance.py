"""
Common utilities for background maintenance tasks.

This module exposes helpers for scheduling the periodic jobs of the runtime
(cache sweep, stream reaping, memory sync drain) and cancelling them when the
application shuts down. Components register their cycle functions here rather
than duplicating scheduling logic.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


async def startup(
    task_fn: Callable[[], Awaitable[None] | None],
    interval: float,
    *,
    name: str | None = None,
) -> asyncio.Task:
    """
    Schedule ``task_fn`` to run periodically every ``interval`` seconds.

    ``task_fn`` may be a coroutine function or a plain callable. The task
    function is invoked in an endless loop until cancelled. Any exceptions
    raised by the task function are logged but do not stop the periodic
    execution.

    Returns the created :class:`asyncio.Task` handle.
    """

    label = name or getattr(task_fn, "__qualname__", "maintenance")

    async def _periodic() -> None:
        await asyncio.sleep(interval)   # delay initial loop
        while True:
            try:
                result = task_fn()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Maintenance cycle %s failed: %s", label, exc)
            await asyncio.sleep(interval)

    return asyncio.create_task(_periodic(), name=label)


async def shutdown(task: asyncio.Task | None) -> None:
    """
    Cancel a maintenance task started with :func:`startup`.

    The function is tolerant of ``None`` and awaits task cancellation to finish
    silently.
    """

    if not task:
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:  # pragma: no cover - normal cancellation
        pass
