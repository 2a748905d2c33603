# guardian/utils/async_helpers.py
"""
Async utilities for safe, bounded task management.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None,
    log_errors: bool = True
) -> asyncio.Task:
    """
    Create an asyncio task whose exceptions are never silently dropped.

    Args:
        coro: The coroutine to run as a task
        name: Optional name for the task (for logging)
        log_errors: Whether to log errors (default True)

    Returns:
        The created asyncio.Task
    """
    task = asyncio.create_task(coro, name=name)

    if log_errors:
        task.add_done_callback(_log_failure)
    return task


def _log_failure(t: asyncio.Task) -> None:
    if t.cancelled():
        return
    exc = t.exception()
    if exc is not None:
        logger.error(f"[AsyncTask:{t.get_name()}] Unhandled exception: {exc}", exc_info=exc)


def _log_abandoned(t: asyncio.Task) -> None:
    if t.cancelled():
        return
    exc = t.exception()
    if exc is not None:
        logger.warning(f"[AsyncTask:{t.get_name()}] Abandoned task failed after timeout: {exc}")


async def run_bounded(
    coro: Coroutine[Any, Any, Any],
    timeout: float,
    name: Optional[str] = None
) -> Any:
    """
    Run a coroutine as a task and wait for it at most `timeout` seconds.

    On timeout the task is cancelled and abandoned: the caller is not held
    up waiting for the cancellation to finish, and anything the task raises
    afterwards is only logged. Exceptions raised before the deadline
    propagate to the caller.

    Raises:
        asyncio.TimeoutError: the deadline passed first
    """
    task = create_safe_task(coro, name=name, log_errors=False)
    done, _ = await asyncio.wait({task}, timeout=max(0.0, timeout))

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_log_abandoned)
    logger.warning(f"[AsyncTask:{task.get_name()}] Timed out after {timeout:.2f}s, abandoned")
    raise asyncio.TimeoutError(f"{task.get_name()} exceeded {timeout:.2f}s")
