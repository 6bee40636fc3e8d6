"""Fire-and-forget side effects that must never block or crash a request."""
import asyncio
import logging
from typing import Awaitable

logger = logging.getLogger(__name__)

# Strong references: the event loop only keeps weak references to tasks
_background_tasks: set[asyncio.Task] = set()


async def _run_guarded(coro: Awaitable, name: str) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        logger.info(f"Detached task {name} cancelled")
        raise
    except Exception as e:
        logger.error(f"Detached task {name} failed: {e}", exc_info=True)


def spawn_detached(coro: Awaitable, name: str) -> asyncio.Task:
    """Schedule ``coro`` without awaiting it; exceptions are logged at the task boundary."""
    task = asyncio.create_task(_run_guarded(coro, name), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_tasks() -> int:
    return len(_background_tasks)


async def drain_detached(timeout: float = 5.0) -> None:
    """Give in-flight side effects a chance to finish on shutdown, then cancel the rest."""
    if not _background_tasks:
        return

    tasks = list(_background_tasks)
    logger.info(f"Waiting for {len(tasks)} detached task(s) to finish...")
    done, pending = await asyncio.wait(tasks, timeout=timeout)

    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"{len(pending)} detached task(s) did not finish within {timeout}s, cancelled")
        await asyncio.gather(*pending, return_exceptions=True)
