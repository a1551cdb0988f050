"""Shared utility functions.

Small helpers used across modules: job ID generation, atomic JSON writes,
fire-and-forget task creation and best-effort sends.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Awaitable, Coroutine
from pathlib import Path
from typing import Any

from danuu.logger import logger


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None) -> None:
    """Write JSON data to a file using atomic rename (tmp → final).

    Readers either see the old content or the complete new content.
    Creates parent directories if they don't exist.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(data, indent=indent))
    tmp.rename(path)


def generate_job_id() -> str:
    """Unique ID for a media job. Also used as the temp file stem."""
    return uuid.uuid4().hex


def create_background_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str | None = None,
) -> asyncio.Task[Any]:
    """Create an asyncio task that logs exceptions instead of swallowing them.

    A drop-in replacement for ``asyncio.create_task`` for fire-and-forget
    work (reconnects, song downloads) where we don't await the result but
    still want failures to appear in logs.
    """
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        # logger.exception() won't work here: we're in a done-callback,
        # not an except handler.
        logger.error(
            "Background task failed",
            task_name=task.get_name(),
            exc_info=exc,
        )


async def best_effort(awaitable: Awaitable[Any], *, action: str, **context: Any) -> bool:
    """Await *awaitable*, logging and swallowing any failure.

    Returns True on success. Used for outbound sends whose failure must not
    abort the rest of a message's processing.
    """
    try:
        await awaitable
    except Exception as exc:
        logger.warning(f"Failed to {action}", err=str(exc), **context)
        return False
    return True
