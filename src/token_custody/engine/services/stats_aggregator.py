"""Stats aggregator: recompute batch header counters from line items."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import update

from token_custody.engine.models.batch_request import BatchRequest
from token_custody.errors.definitions import ErrBatchNotFound

if TYPE_CHECKING:
    from token_custody.engine.client import CustodyEngine

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Writes ``completed_count`` / ``failed_count`` onto a batch header.

    Every refresh is a full recompute over the detail rows, so repeated or
    interleaved calls converge on the same values.
    """

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    async def refresh(self, batch_id: str) -> tuple[int, int]:
        """Recompute and store the counters of *batch_id*.

        The aggregate query and the header update run in one transaction.

        Returns:
            ``(completed, failed)`` as written.

        Raises:
            NotFoundError: If the batch doesn't exist.
        """
        query = self._engine.detail_store.stats_query(batch_id)
        async with self._engine.datastore.transaction() as session:
            row = (await session.execute(query)).one()
            completed = int(row.completed or 0)
            failed = int(row.failed or 0)
            result = await session.execute(
                update(BatchRequest)
                .where(BatchRequest.id == batch_id)
                .values(completed_count=completed, failed_count=failed)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ErrBatchNotFound
        logger.debug("Batch %s stats: completed=%d failed=%d", batch_id, completed, failed)
        return completed, failed
