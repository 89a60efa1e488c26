"""asyncio task creation that never loses an exception.

The decision pipeline runs each evaluation as its own task and cancels
it when a newer evaluation arrives. Cancellation is routine there and
only logged at DEBUG; any other failure is logged at ERROR with its
traceback even if no caller ever awaits the task.
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


def safe_create_task(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
    """Schedule ``coro`` on the running loop with failure logging attached."""
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_report_outcome)
    return task


def _report_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.debug(f"Task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Task {task.get_name()} failed: {exc}", exc_info=exc)
