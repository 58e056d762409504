"""Retryable dispatcher: drives a batch through bounded-concurrency transfers.

Lifecycle of one run:

1. The batch moves to PROCESSING.
2. Undelivered items are fetched, pending first, then retryable.
3. Items are sent in fixed-size windows. Every item in a window runs
   concurrently and the window settles completely before the next starts.
4. Each item gets up to ``max_retry`` attempts in total, with a fixed delay
   between attempts. Every attempt is recorded on its row.
5. Header counters are recomputed after every window.
6. When nothing is left to fetch the batch moves to DONE.

Individual transfer failures never leave the item they belong to. Any
other exception (store, stats or audit failure) moves the batch to ERROR
and is re-raised. Item selection is purely state driven, so running the
dispatcher again on a crashed batch picks up where it stopped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from token_custody.engine.models.batch_request import BatchStatus
from token_custody.engine.services.audit_log import CATE_COMPANY_SEND, CATE_TRANSFER
from token_custody.engine.services.detail_store import (
    RESULT_FAILURE,
    RESULT_SUCCESS,
    DetailResult,
)
from token_custody.errors.definitions import ErrBatchNotFound
from token_custody.utils.validation import mask_address

if TYPE_CHECKING:
    from collections.abc import Sequence

    from token_custody.engine.client import CustodyEngine
    from token_custody.engine.services.detail_store import BatchStats, DispatchItem

logger = logging.getLogger(__name__)

API_TRANSFER = "transfer"
API_PROCESS_ERROR = "PROCESS_ERROR"


def windows(items: Sequence[DispatchItem], size: int) -> list[Sequence[DispatchItem]]:
    """Split *items* into consecutive slices of at most *size*."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class RetryableDispatcher:
    """Delivers every undelivered item of a batch through the ledger client."""

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, batch_id: str) -> BatchStats:
        """Dispatch *batch_id* to completion.

        Batches already DONE or ERROR are left untouched.

        Returns:
            Item statistics after the run.

        Raises:
            NotFoundError: If the batch doesn't exist.
            Exception: Whatever aborted the run; the batch is then in ERROR.
        """
        engine = self._engine
        batch = await engine.request_store.get_batch(batch_id)
        if batch is None:
            raise ErrBatchNotFound
        if BatchStatus(batch.status).is_terminal:
            logger.info("Batch %s is already %s, not dispatching", batch_id, batch.status)
            return await engine.detail_store.get_stats(batch.id)

        metrics = engine.metrics
        if metrics is not None:
            with metrics.track_dispatch():
                return await self._run(batch.id)
        return await self._run(batch.id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(self, batch_id: str) -> BatchStats:
        engine = self._engine
        cfg = engine.config.dispatch
        started = time.monotonic()
        try:
            await engine.request_store.set_batch_status(batch_id, BatchStatus.PROCESSING)
            logger.info("Dispatching batch %s", batch_id)
            while items := await self._fetch(batch_id, cfg.fetch_limit):
                for number, window in enumerate(windows(items, cfg.window_size), start=1):
                    await self._dispatch_window(window)
                    completed, failed = await engine.stats_aggregator.refresh(batch_id)
                    logger.info(
                        "Batch %s window %d done (completed=%d failed=%d)",
                        batch_id,
                        number,
                        completed,
                        failed,
                    )
            await engine.stats_aggregator.refresh(batch_id)
            await engine.request_store.set_batch_status(batch_id, BatchStatus.DONE)
        except Exception as exc:
            logger.exception("Dispatch of batch %s aborted", batch_id)
            await self._abort(batch_id, exc, started)
            raise

        if engine.metrics is not None:
            engine.metrics.record_batch_finished(BatchStatus.DONE.value)
        stats = await engine.detail_store.get_stats(batch_id)
        logger.info(
            "Batch %s done: %d/%d sent, %d failed in %.1fs",
            batch_id,
            stats.completed,
            stats.total,
            stats.failed,
            time.monotonic() - started,
        )
        return stats

    async def _fetch(self, batch_id: str, limit: int) -> list[DispatchItem]:
        store = self._engine.detail_store
        items = await store.list_pending(batch_id, limit)
        if len(items) < limit:
            items += await store.list_retryable(batch_id, limit - len(items))
        return items

    async def _dispatch_window(self, window: Sequence[DispatchItem]) -> None:
        """Run every item of *window* concurrently and let all of them settle.

        The first exception raised by any item is re-raised only after its
        siblings have finished.
        """
        results = await asyncio.gather(
            *(self._process_item(item) for item in window), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _process_item(self, item: DispatchItem) -> bool:
        engine = self._engine
        cfg = engine.config.dispatch
        remaining = cfg.max_retry - item.attempt_count
        started = time.monotonic()
        error = "no attempts left"
        for attempt in range(1, remaining + 1):
            tx_id, error = await self._attempt(item)
            if engine.metrics is not None:
                engine.metrics.record_transfer_attempt(success=error is None)
            if error is None:
                await engine.detail_store.update_result(item.id, DetailResult.ok())
                await self._audit_item(item, started, tx_id=tx_id, error=None)
                return True
            await engine.detail_store.update_result(item.id, DetailResult.failed(error))
            logger.warning(
                "Transfer of detail %d to %s failed (attempt %d/%d): %s",
                item.id,
                mask_address(item.address),
                item.attempt_count + attempt,
                cfg.max_retry,
                error,
            )
            if attempt < remaining:
                await asyncio.sleep(cfg.retry_delay)
        await self._audit_item(item, started, tx_id=None, error=error)
        return False

    async def _attempt(self, item: DispatchItem) -> tuple[str | None, str | None]:
        """Make one transfer; return ``(tx_id, None)`` or ``(None, error)``.

        The ledger call is not bounded here. It returns only once the
        transfer has landed or can no longer land, so a failed attempt is
        safe to retry.
        """
        try:
            result = await self._engine.ledger.transfer(item.address, item.amount)
        except Exception as exc:  # noqa: BLE001 - any ledger failure is one failed attempt
            return None, str(exc) or type(exc).__name__
        if result.success:
            return result.tx_id, None
        return None, result.error or "transfer failed"

    async def _audit_item(
        self,
        item: DispatchItem,
        started: float,
        *,
        tx_id: str | None,
        error: str | None,
    ) -> None:
        await self._engine.audit_log.write(
            api_name=API_TRANSFER,
            success=error is None,
            cate1=CATE_COMPANY_SEND,
            cate2=CATE_TRANSFER,
            request_id=item.batch_id,
            result_code=RESULT_SUCCESS if error is None else RESULT_FAILURE,
            latency_ms=int((time.monotonic() - started) * 1000),
            error_message=error,
            content={
                "detail_id": item.id,
                "address": mask_address(item.address),
                "amount": str(item.amount),
                "tx_id": tx_id,
            },
        )

    async def _abort(self, batch_id: str, exc: Exception, started: float) -> None:
        """Move the batch to ERROR and audit the failure.

        Failures of these two writes are logged; the caller re-raises *exc*.
        """
        engine = self._engine
        try:
            await engine.request_store.set_batch_status(batch_id, BatchStatus.ERROR)
        except Exception:
            logger.exception("Could not mark batch %s as ERROR", batch_id)
        if engine.metrics is not None:
            engine.metrics.record_batch_finished(BatchStatus.ERROR.value)
        try:
            await engine.audit_log.write(
                api_name=API_PROCESS_ERROR,
                success=False,
                cate1=CATE_COMPANY_SEND,
                cate2=CATE_TRANSFER,
                request_id=batch_id,
                result_code=RESULT_FAILURE,
                latency_ms=int((time.monotonic() - started) * 1000),
                error_code=getattr(exc, "code", type(exc).__name__),
                error_message=str(exc)[:500],
            )
        except Exception:
            logger.exception("Could not audit abort of batch %s", batch_id)
