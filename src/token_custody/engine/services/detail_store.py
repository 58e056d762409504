"""Detail store: durable per-recipient line items of a batch.

Provides:
- All-or-nothing bulk insert (validated first, chunked, one transaction)
- State-driven selection of pending and retryable items
- Guarded single and batched attempt result updates
- Listing with explicit query options, and live statistics
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, insert, select, update

from token_custody.engine.models.base import FLAG_NO, FLAG_YES
from token_custody.engine.models.batch_detail import MAX_ERROR_LENGTH, BatchDetail
from token_custody.engine.models.batch_request import BatchRequest
from token_custody.errors.custody_errors import DecryptionError
from token_custody.errors.definitions import (
    ErrBatchNotFound,
    ErrDetailFinished,
    ErrDetailNotFound,
    ErrEmptyRecipients,
    ErrInvalidLimit,
)
from token_custody.utils.validation import parse_amount, validate_address

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from token_custody.engine.client import CustodyEngine

logger = logging.getLogger(__name__)

# Rows per INSERT statement, keeps bound parameters under driver ceilings
BULK_INSERT_LIMIT = 1000

MAX_LIST_LIMIT = 10_000

RESULT_SUCCESS = "200"
RESULT_FAILURE = "500"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecipientItem:
    """One requested payout."""

    address: str
    amount: Decimal


@dataclass(frozen=True)
class DispatchItem:
    """An undelivered line item with its address decrypted."""

    id: int
    batch_id: str
    address: str
    amount: Decimal
    attempt_count: int


@dataclass(frozen=True)
class DetailResult:
    """Outcome of one transfer attempt."""

    success: bool
    result_code: str
    error_message: str | None = None

    @classmethod
    def ok(cls) -> DetailResult:
        """A successful attempt."""
        return cls(success=True, result_code=RESULT_SUCCESS)

    @classmethod
    def failed(cls, error: str) -> DetailResult:
        """A failed attempt carrying *error*."""
        return cls(success=False, result_code=RESULT_FAILURE, error_message=error)


class SentFilter(enum.StrEnum):
    """Filter on the ``sent`` flag."""

    SENT = FLAG_YES
    UNSENT = FLAG_NO


@dataclass(frozen=True)
class DetailQuery:
    """Options for :meth:`DetailStore.get_all_details`.

    Attributes:
        decrypt: Return plaintext addresses (``None`` where decryption fails).
        sent_filter: Only rows with this ``sent`` flag.
        limit: Maximum rows, ``None`` for all.
        offset: Rows to skip.
    """

    decrypt: bool = True
    sent_filter: SentFilter | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class DetailView:
    """A line item as reported to callers."""

    id: int
    batch_id: str
    address: str | None
    amount: Decimal
    attempt_count: int
    sent: str
    last_result_code: str | None
    last_error_message: str | None
    created_at: datetime
    updated_at: datetime
    decryption_error: bool = False


@dataclass(frozen=True)
class BatchStats:
    """Live counts over a batch's line items."""

    total: int
    completed: int
    failed: int
    pending: int
    retryable: int
    success_rate: float


def truncate_error(message: str | None) -> str | None:
    """Bound an error message to the column width."""
    if message is None or len(message) <= MAX_ERROR_LENGTH:
        return message
    return message[: MAX_ERROR_LENGTH - 3] + "..."


def _validate_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIST_LIMIT:
        raise ErrInvalidLimit


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DetailStore:
    """Persistence for batch line items.

    Addresses are sealed with the engine's envelope cipher before they are
    written and opened again only for the caller that needs them.
    """

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    @property
    def max_retry(self) -> int:
        """Attempts after which an unsent item is terminally failed."""
        return self._engine.config.dispatch.max_retry

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_details(
        self,
        batch_id: str,
        items: Sequence[RecipientItem],
        *,
        session: AsyncSession | None = None,
    ) -> int:
        """Insert all line items of a batch, or none of them.

        Every item is validated before anything is written; rows are then
        inserted in chunks of ``BULK_INSERT_LIMIT`` inside one transaction.

        Args:
            batch_id: The owning batch, which must exist.
            items: Recipients and amounts.
            session: Join this session's transaction instead of opening one.

        Returns:
            Number of rows inserted.

        Raises:
            ValidationError: If the list is empty or any item is malformed.
            NotFoundError: If the batch doesn't exist.
        """
        if not items:
            raise ErrEmptyRecipients
        decimals = self._engine.config.ledger.token_decimals
        validated = [
            (validate_address(item.address), parse_amount(item.amount, decimals=decimals))
            for item in items
        ]
        cipher = self._engine.cipher
        rows: list[dict[str, object]] = [
            {
                "batch_id": batch_id,
                "wallet_address": cipher.encrypt(address),
                "amount": amount,
                "attempt_count": 0,
                "sent": FLAG_NO,
            }
            for address, amount in validated
        ]

        if session is not None:
            await self._insert_rows(session, batch_id, rows)
        else:
            async with self._engine.datastore.transaction() as own:
                await self._insert_rows(own, batch_id, rows)
        logger.info("Inserted %d details for batch %s", len(rows), batch_id)
        return len(rows)

    async def update_result(self, detail_id: int, result: DetailResult) -> None:
        """Record one attempt outcome on a line item.

        Increments ``attempt_count`` and sets ``sent``. Items already sent
        or out of attempts are never touched again.

        Raises:
            NotFoundError: If no item has this id.
            ConflictError: If the item is already sent or out of attempts.
        """
        async with self._engine.datastore.transaction() as session:
            await self._apply_result(session, detail_id, result)

    async def update_results_batch(self, results: Sequence[tuple[int, DetailResult]]) -> int:
        """Record several attempt outcomes in one transaction.

        Returns:
            Number of items updated.

        Raises:
            NotFoundError: If any id is unknown (nothing is written).
            ConflictError: If any item is finished (nothing is written).
        """
        if not results:
            return 0
        async with self._engine.datastore.transaction() as session:
            for detail_id, result in results:
                await self._apply_result(session, detail_id, result)
        return len(results)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_pending(
        self, batch_id: str, limit: int = BULK_INSERT_LIMIT
    ) -> list[DispatchItem]:
        """Never-attempted items in insertion order.

        Raises:
            ValidationError: If *limit* is outside 1..10000.
            DecryptionError: If a stored address cannot be opened.
        """
        _validate_limit(limit)
        stmt = (
            select(BatchDetail)
            .where(
                BatchDetail.batch_id == batch_id,
                BatchDetail.sent == FLAG_NO,
                BatchDetail.attempt_count == 0,
            )
            .order_by(BatchDetail.id)
            .limit(limit)
        )
        return await self._dispatch_items(stmt)

    async def list_retryable(
        self, batch_id: str, limit: int = BULK_INSERT_LIMIT
    ) -> list[DispatchItem]:
        """Previously failed items with attempts left, longest-waiting first.

        Raises:
            ValidationError: If *limit* is outside 1..10000.
            DecryptionError: If a stored address cannot be opened.
        """
        _validate_limit(limit)
        stmt = (
            select(BatchDetail)
            .where(
                BatchDetail.batch_id == batch_id,
                BatchDetail.sent == FLAG_NO,
                BatchDetail.attempt_count > 0,
                BatchDetail.attempt_count < self.max_retry,
            )
            .order_by(BatchDetail.updated_at, BatchDetail.id)
            .limit(limit)
        )
        return await self._dispatch_items(stmt)

    async def get_all_details(
        self, batch_id: str, query: DetailQuery | None = None
    ) -> list[DetailView]:
        """List a batch's line items in insertion order.

        Rows whose address cannot be decrypted are still returned, with
        ``address=None`` and ``decryption_error=True``.
        """
        query = query or DetailQuery()
        stmt = select(BatchDetail).where(BatchDetail.batch_id == batch_id)
        if query.sent_filter is not None:
            stmt = stmt.where(BatchDetail.sent == SentFilter(query.sent_filter).value)
        stmt = stmt.order_by(BatchDetail.id)
        if query.limit is not None:
            _validate_limit(query.limit)
            stmt = stmt.limit(query.limit)
        if query.offset:
            stmt = stmt.offset(max(query.offset, 0))

        async with self._engine.datastore.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        cipher = self._engine.cipher
        views: list[DetailView] = []
        for row in rows:
            address: str | None = None
            failed = False
            if query.decrypt:
                try:
                    address = cipher.decrypt(row.wallet_address)
                except DecryptionError:
                    logger.warning("Could not decrypt address of detail %d", row.id)
                    failed = True
            views.append(
                DetailView(
                    id=row.id,
                    batch_id=row.batch_id,
                    address=address,
                    amount=row.amount,
                    attempt_count=row.attempt_count,
                    sent=row.sent,
                    last_result_code=row.last_result_code,
                    last_error_message=row.last_error_message,
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                    decryption_error=failed,
                )
            )
        return views

    async def get_stats(self, batch_id: str) -> BatchStats:
        """Count items by state directly from the current rows.

        Raises:
            NotFoundError: If the batch doesn't exist.
        """
        async with self._engine.datastore.session() as session:
            if await session.get(BatchRequest, batch_id) is None:
                raise ErrBatchNotFound
            row = (await session.execute(self.stats_query(batch_id))).one()

        total = int(row.total or 0)
        completed = int(row.completed or 0)
        return BatchStats(
            total=total,
            completed=completed,
            failed=int(row.failed or 0),
            pending=int(row.pending or 0),
            retryable=int(row.retryable or 0),
            success_rate=round(completed / total * 100, 2) if total else 0.0,
        )

    def stats_query(self, batch_id: str) -> Select[Any]:
        """Aggregate SELECT of per-state counts for *batch_id*."""
        unsent = BatchDetail.sent == FLAG_NO
        max_retry = self.max_retry
        return select(
            func.count(BatchDetail.id).label("total"),
            func.sum(case((BatchDetail.sent == FLAG_YES, 1), else_=0)).label("completed"),
            func.sum(case((unsent & (BatchDetail.attempt_count >= max_retry), 1), else_=0)).label(
                "failed"
            ),
            func.sum(case((unsent & (BatchDetail.attempt_count == 0), 1), else_=0)).label(
                "pending"
            ),
            func.sum(
                case(
                    (
                        unsent
                        & (BatchDetail.attempt_count > 0)
                        & (BatchDetail.attempt_count < max_retry),
                        1,
                    ),
                    else_=0,
                )
            ).label("retryable"),
        ).where(BatchDetail.batch_id == batch_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _insert_rows(
        session: AsyncSession, batch_id: str, rows: list[dict[str, object]]
    ) -> None:
        if await session.get(BatchRequest, batch_id) is None:
            raise ErrBatchNotFound
        for start in range(0, len(rows), BULK_INSERT_LIMIT):
            await session.execute(insert(BatchDetail), rows[start : start + BULK_INSERT_LIMIT])

    async def _apply_result(
        self, session: AsyncSession, detail_id: int, result: DetailResult
    ) -> None:
        stmt = (
            update(BatchDetail)
            .where(
                BatchDetail.id == detail_id,
                BatchDetail.sent == FLAG_NO,
                BatchDetail.attempt_count < self.max_retry,
            )
            .values(
                attempt_count=BatchDetail.attempt_count + 1,
                sent=FLAG_YES if result.success else FLAG_NO,
                last_result_code=result.result_code,
                last_error_message=None if result.success else truncate_error(result.error_message),
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        outcome = await session.execute(stmt)
        if outcome.rowcount == 0:
            exists = await session.scalar(
                select(func.count()).select_from(BatchDetail).where(BatchDetail.id == detail_id)
            )
            if not exists:
                raise ErrDetailNotFound
            raise ErrDetailFinished

    async def _dispatch_items(self, stmt: Select[Any]) -> list[DispatchItem]:
        async with self._engine.datastore.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        cipher = self._engine.cipher
        return [
            DispatchItem(
                id=row.id,
                batch_id=row.batch_id,
                address=cipher.decrypt(row.wallet_address),
                amount=row.amount,
                attempt_count=row.attempt_count,
            )
            for row in rows
        ]
