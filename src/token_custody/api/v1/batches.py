"""V1 batch endpoints.

Batch submission is fire-and-forget: the POST returns once the batch is
persisted and callers poll the status endpoint.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from token_custody.api.dependencies import get_engine
from token_custody.api.v1.schemas import (
    BatchAcceptedResponse,
    BatchCreateRequest,
    BatchResponse,
    BatchStatsResponse,
    DetailResponse,
)
from token_custody.engine.client import CustodyEngine  # noqa: TC001
from token_custody.engine.models.batch_request import BatchStatus
from token_custody.engine.services.detail_store import DetailQuery, RecipientItem, SentFilter
from token_custody.engine.services.request_store import BatchLabels

router = APIRouter(tags=["batch"])


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/batches", status_code=202)
async def submit_batch(
    engine: Annotated[CustodyEngine, Depends(get_engine)],
    body: BatchCreateRequest,
) -> dict:
    """Persist a batch and dispatch it in the background."""
    batch_id = await engine.batch_service.submit_batch(
        [RecipientItem(address=r.address, amount=r.amount) for r in body.recipients],
        batch_id=body.batch_id,
        labels=BatchLabels(cate1=body.cate1, cate2=body.cate2),
    )
    return BatchAcceptedResponse(
        batch_id=batch_id, status=BatchStatus.PENDING.value
    ).model_dump(mode="json")


@router.get("/batches/{batch_id}")
async def get_batch(
    batch_id: str,
    engine: Annotated[CustodyEngine, Depends(get_engine)],
) -> dict:
    """Get a batch header with live item statistics."""
    view = await engine.batch_service.get_status(batch_id)
    batch, stats = view.batch, view.stats
    return BatchResponse(
        id=batch.id,
        status=batch.status,
        cate1=batch.cate1,
        cate2=batch.cate2,
        total_count=batch.total_count,
        completed_count=batch.completed_count,
        failed_count=batch.failed_count,
        stats=BatchStatsResponse(
            total=stats.total,
            completed=stats.completed,
            failed=stats.failed,
            pending=stats.pending,
            retryable=stats.retryable,
            success_rate=stats.success_rate,
        ),
        created_at=batch.created_at,
        updated_at=batch.updated_at,
    ).model_dump(mode="json")


@router.get("/batches/{batch_id}/details")
async def list_batch_details(
    batch_id: str,
    engine: Annotated[CustodyEngine, Depends(get_engine)],
    decrypt: bool = True,
    sent: SentFilter | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[dict]:
    """List the line items of a batch in insertion order."""
    details = await engine.batch_service.list_details(
        batch_id,
        DetailQuery(decrypt=decrypt, sent_filter=sent, limit=limit, offset=offset),
    )
    return [
        DetailResponse(
            id=d.id,
            batch_id=d.batch_id,
            address=d.address,
            amount=d.amount,
            attempt_count=d.attempt_count,
            sent=d.sent,
            last_result_code=d.last_result_code,
            last_error_message=d.last_error_message,
            decryption_error=d.decryption_error,
            created_at=d.created_at,
            updated_at=d.updated_at,
        ).model_dump(mode="json")
        for d in details
    ]
