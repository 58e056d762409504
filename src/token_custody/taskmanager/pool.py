"""Bounded pool of detached batch dispatches.

Submitting a batch returns immediately; the dispatch runs on its own
asyncio task and at most ``max_concurrent`` batches dispatch at once.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DispatchPool:
    """Runs ``runner(batch_id)`` for submitted batches under a semaphore.

    Usage::

        pool = DispatchPool(dispatcher.run, max_concurrent=4)
        pool.submit(batch_id)
        ...
        await pool.join()
    """

    def __init__(
        self,
        runner: Callable[[str], Awaitable[object]],
        *,
        max_concurrent: int = 4,
    ) -> None:
        self._runner = runner
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def active(self) -> list[str]:
        """Batch ids submitted and not yet finished."""
        return [batch_id for batch_id, task in self._tasks.items() if not task.done()]

    def is_active(self, batch_id: str) -> bool:
        """Whether *batch_id* is queued or dispatching in this process."""
        task = self._tasks.get(batch_id)
        return task is not None and not task.done()

    def submit(self, batch_id: str) -> bool:
        """Schedule a dispatch of *batch_id* and return without waiting.

        A batch already queued or running in this pool is not scheduled
        twice.

        Returns:
            True if a new dispatch was scheduled.

        Raises:
            RuntimeError: If the pool has been stopped.
        """
        if self._closed:
            msg = "DispatchPool is stopped"
            raise RuntimeError(msg)
        if self.is_active(batch_id):
            logger.info("Batch %s is already scheduled", batch_id)
            return False
        task = asyncio.create_task(self._run(batch_id), name=f"dispatch-{batch_id}")
        self._tasks[batch_id] = task
        task.add_done_callback(functools.partial(self._forget, batch_id))
        return True

    async def join(self) -> None:
        """Wait until every submitted dispatch has finished."""
        while pending := [t for t in self._tasks.values() if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def stop(self) -> None:
        """Refuse new work and cancel dispatches still running."""
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, batch_id: str) -> None:
        async with self._semaphore:
            try:
                await self._runner(batch_id)
            except asyncio.CancelledError:
                logger.warning("Dispatch of batch %s cancelled", batch_id)
                raise
            except Exception as exc:
                logger.error("Dispatch of batch %s failed: %s", batch_id, exc)

    def _forget(self, batch_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(batch_id) is task:
            del self._tasks[batch_id]
