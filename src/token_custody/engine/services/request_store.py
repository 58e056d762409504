"""Request store: durable batch headers.

Provides:
- Batch header creation with id / count validation
- Forward-only status transitions
- Header lookup and unfinished-batch listing
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from token_custody.engine.models.batch_request import BatchRequest, BatchStatus
from token_custody.errors.custody_errors import DuplicateError
from token_custody.errors.definitions import (
    ErrBatchNotFound,
    ErrInvalidStatus,
    ErrInvalidTotalCount,
    ErrStatusRegression,
)
from token_custody.utils.validation import validate_batch_id

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from token_custody.engine.client import CustodyEngine

logger = logging.getLogger(__name__)


class BatchLabels(NamedTuple):
    """Free-form partitioning labels of a batch."""

    cate1: str = ""
    cate2: str = ""


def parse_status(status: str | BatchStatus) -> BatchStatus:
    """Coerce *status* to a ``BatchStatus`` or raise ``ErrInvalidStatus``."""
    try:
        return BatchStatus(status)
    except ValueError:
        raise ErrInvalidStatus from None


class RequestStore:
    """Persistence for batch headers."""

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        batch_id: str,
        labels: BatchLabels | tuple[str, str],
        total_count: int,
        *,
        session: AsyncSession | None = None,
    ) -> BatchRequest:
        """Insert a new PENDING batch header.

        Args:
            batch_id: Canonical UUID string.
            labels: ``(cate1, cate2)`` category labels.
            total_count: Number of recipients, at least 1.
            session: Join this session's transaction instead of opening one.

        Returns:
            The persisted BatchRequest.

        Raises:
            ValidationError: If the id or count is malformed.
            DuplicateError: If a batch with this id exists.
        """
        batch_id = validate_batch_id(batch_id)
        if isinstance(total_count, bool) or not isinstance(total_count, int) or total_count < 1:
            raise ErrInvalidTotalCount
        cate1, cate2 = labels

        batch = BatchRequest(
            id=batch_id,
            cate1=cate1,
            cate2=cate2,
            total_count=total_count,
            completed_count=0,
            failed_count=0,
            status=BatchStatus.PENDING.value,
        )
        if session is not None:
            await self._insert(session, batch)
        else:
            async with self._engine.datastore.transaction() as own:
                await self._insert(own, batch)
        logger.info("Created batch %s (%d recipients)", batch_id, total_count)
        return batch

    async def get_batch(self, batch_id: str) -> BatchRequest | None:
        """Return the batch header, or None if it doesn't exist.

        Ids are stored in lower case, so lookups ignore case.
        """
        async with self._engine.datastore.session() as session:
            return await session.get(BatchRequest, batch_id.lower())

    async def set_batch_status(self, batch_id: str, status: str | BatchStatus) -> BatchRequest:
        """Move a batch to *status*.

        Re-applying the current status is a no-op; moving backwards (or out
        of a terminal state) is refused.

        Raises:
            ValidationError: If *status* is not a known value.
            NotFoundError: If the batch doesn't exist.
            ConflictError: If the transition would move backwards.
        """
        new_status = parse_status(status)
        async with self._engine.datastore.transaction() as session:
            batch = await session.get(BatchRequest, batch_id, with_for_update=True)
            if batch is None:
                raise ErrBatchNotFound
            current = BatchStatus(batch.status)
            if current == new_status:
                return batch
            if new_status.rank <= current.rank:
                raise ErrStatusRegression
            batch.status = new_status.value
        logger.info("Batch %s: %s -> %s", batch_id, current, new_status)
        return batch

    async def list_unfinished(self) -> list[BatchRequest]:
        """Return batches still PENDING or PROCESSING, oldest first."""
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(BatchRequest)
                .where(
                    BatchRequest.status.in_(
                        [BatchStatus.PENDING.value, BatchStatus.PROCESSING.value]
                    )
                )
                .order_by(BatchRequest.created_at, BatchRequest.id)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _insert(session: AsyncSession, batch: BatchRequest) -> None:
        if await session.get(BatchRequest, batch.id) is not None:
            raise DuplicateError(f"batch {batch.id} already exists", code="batch-duplicate")
        session.add(batch)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicateError(
                f"batch {batch.id} already exists", code="batch-duplicate"
            ) from exc
