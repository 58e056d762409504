"""Batch service: the entry point for disbursement batches.

Provides:
- Atomic creation (header and every line item in one transaction)
- Fire-and-forget submission to the dispatch pool
- Status reads combining the header with live item statistics
- Resumption of batches left unfinished by a previous process
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from token_custody.engine.services.request_store import BatchLabels
from token_custody.errors.definitions import ErrBatchNotFound, ErrEmptyRecipients
from token_custody.utils.validation import validate_batch_id

if TYPE_CHECKING:
    from collections.abc import Sequence

    from token_custody.engine.client import CustodyEngine
    from token_custody.engine.models.batch_request import BatchRequest
    from token_custody.engine.services.detail_store import (
        BatchStats,
        DetailQuery,
        DetailView,
        RecipientItem,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchStatusView:
    """A batch header together with its live item statistics."""

    batch: BatchRequest
    stats: BatchStats


class BatchService:
    """Creates, submits and reports on disbursement batches."""

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    async def create_batch(
        self,
        recipients: Sequence[RecipientItem],
        *,
        batch_id: str | None = None,
        labels: BatchLabels = BatchLabels(),  # noqa: B008
    ) -> str:
        """Persist a PENDING batch with all of its recipients, or nothing.

        Args:
            recipients: Addresses and amounts.
            batch_id: Caller-chosen UUID; generated when omitted.
            labels: Category labels.

        Returns:
            The batch id.

        Raises:
            ValidationError: If the id or any recipient is malformed.
            DuplicateError: If the id is taken.
        """
        if not recipients:
            raise ErrEmptyRecipients
        batch_id = validate_batch_id(batch_id) if batch_id is not None else str(uuid.uuid4())
        engine = self._engine
        async with engine.datastore.transaction() as session:
            await engine.request_store.create_batch(
                batch_id, labels, len(recipients), session=session
            )
            await engine.detail_store.insert_details(batch_id, recipients, session=session)
        return batch_id

    async def submit_batch(
        self,
        recipients: Sequence[RecipientItem],
        *,
        batch_id: str | None = None,
        labels: BatchLabels = BatchLabels(),  # noqa: B008
    ) -> str:
        """Create a batch and start dispatching it in the background.

        Returns as soon as the batch is persisted.

        Returns:
            The batch id.
        """
        batch_id = await self.create_batch(recipients, batch_id=batch_id, labels=labels)
        self._engine.dispatch_pool.submit(batch_id)
        logger.info("Submitted batch %s with %d recipients", batch_id, len(recipients))
        return batch_id

    async def dispatch(self, batch_id: str) -> bool:
        """Start (or restart) dispatching an existing batch in the background.

        Returns:
            True if a dispatch was scheduled.

        Raises:
            NotFoundError: If the batch doesn't exist.
        """
        batch = await self._engine.request_store.get_batch(batch_id)
        if batch is None:
            raise ErrBatchNotFound
        return self._engine.dispatch_pool.submit(batch.id)

    async def get_status(self, batch_id: str) -> BatchStatusView:
        """Return the header and live stats of a batch.

        Raises:
            NotFoundError: If the batch doesn't exist.
        """
        batch = await self._engine.request_store.get_batch(batch_id)
        if batch is None:
            raise ErrBatchNotFound
        stats = await self._engine.detail_store.get_stats(batch.id)
        return BatchStatusView(batch=batch, stats=stats)

    async def list_details(
        self, batch_id: str, query: DetailQuery | None = None
    ) -> list[DetailView]:
        """List the line items of a batch.

        Raises:
            NotFoundError: If the batch doesn't exist.
        """
        batch = await self._engine.request_store.get_batch(batch_id)
        if batch is None:
            raise ErrBatchNotFound
        return await self._engine.detail_store.get_all_details(batch.id, query)

    async def resume_unfinished(self) -> list[str]:
        """Resubmit every PENDING or PROCESSING batch.

        Returns:
            Ids of the batches scheduled.
        """
        resumed = [
            batch.id
            for batch in await self._engine.request_store.list_unfinished()
            if self._engine.dispatch_pool.submit(batch.id)
        ]
        if resumed:
            logger.info("Resumed %d unfinished batches", len(resumed))
        return resumed
