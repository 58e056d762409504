"""Batch status gauges kept current in the background.

``BatchStatusMonitor`` counts batches per status every
``CALCULATE_METRICS_PERIOD`` seconds and pushes the counts to the
``custody_batches_by_status`` gauges, so PENDING and PROCESSING backlogs
are visible without scraping the database.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from token_custody.engine.models.batch_request import BatchRequest

if TYPE_CHECKING:
    from token_custody.engine.client import CustodyEngine
    from token_custody.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)

CALCULATE_METRICS_PERIOD = 15
CALCULATE_METRICS_JOB = "calculate_metrics"


async def count_batches_by_status(engine: CustodyEngine) -> dict[str, int]:
    """Return the number of batches in each status present."""
    async with engine.datastore.session() as session:
        result = await session.execute(
            select(BatchRequest.status, func.count(BatchRequest.id)).group_by(BatchRequest.status)
        )
        return {status: int(count) for status, count in result.all()}


class BatchStatusMonitor:
    """Refreshes the per-status batch gauges until stopped.

    The first refresh happens as soon as the monitor starts. A failed
    refresh is logged and the loop carries on.
    """

    def __init__(
        self,
        engine: CustodyEngine,
        metrics: EngineMetrics,
        *,
        period: float = CALCULATE_METRICS_PERIOD,
    ) -> None:
        self._engine = engine
        self._metrics = metrics
        self._period = period
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the refresh loop is scheduled."""
        return self._task is not None and not self._task.done()

    @property
    def period(self) -> float:
        """Seconds between refreshes."""
        return self._period

    async def refresh(self) -> dict[str, int]:
        """Count batches per status once and update the gauges."""
        with self._metrics.track_cron(CALCULATE_METRICS_JOB):
            counts = await count_batches_by_status(self._engine)
            self._metrics.set_batch_counts(counts)
        logger.debug("Batch counts: %s", counts)
        return counts

    def start(self) -> None:
        """Schedule the refresh loop (no-op when already running)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="batch-status-monitor")
        logger.info("Batch status monitor started (every %gs)", self._period)

    async def stop(self) -> None:
        """Cancel the refresh loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Batch status monitor stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Refreshing batch status gauges failed")
            await asyncio.sleep(self._period)
