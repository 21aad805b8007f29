"""Fire-and-forget background work (cache writes, analytics)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Strong references; the event loop only keeps weak ones
_background_tasks: set[asyncio.Task] = set()


async def _run_logged(coro: Coroutine[Any, Any, Any], name: str) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Background task failed: %s", name)


def spawn_background(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Schedule ``coro`` without awaiting it. Failures are logged and dropped."""
    task = asyncio.create_task(_run_logged(coro, name), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_for_background_tasks(timeout: float | None = None) -> None:
    """Wait until every scheduled background task has finished."""
    while _background_tasks:
        pending = list(_background_tasks)
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        _background_tasks.difference_update(done)
        if not_done:
            logger.warning("%d background task(s) still running after %.1fs", len(not_done), timeout or 0)
            return
