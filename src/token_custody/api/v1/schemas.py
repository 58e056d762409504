"""V1 API request/response Pydantic schemas.

These are the *API-layer* schemas, thin wrappers that define the HTTP
contract. The endpoint code maps between service results and these schemas.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from decimal import Decimal  # noqa: TC003 - Pydantic needs this at runtime

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class RecipientRequest(BaseModel):
    """One payout line of a batch."""

    address: str
    amount: Decimal


class BatchCreateRequest(BaseModel):
    """POST /v1/batches: persist a batch and start dispatching it."""

    batch_id: str | None = Field(None, description="Caller-chosen UUID, generated when omitted")
    cate1: str = Field("", max_length=100)
    cate2: str = Field("", max_length=100)
    recipients: list[RecipientRequest]


class BatchAcceptedResponse(BaseModel):
    """Returned as soon as the batch is persisted."""

    batch_id: str
    status: str


class BatchStatsResponse(BaseModel):
    """Live per-state item counts."""

    total: int
    completed: int
    failed: int
    pending: int
    retryable: int
    success_rate: float


class BatchResponse(BaseModel):
    """Batch header together with its live stats."""

    id: str
    status: str
    cate1: str
    cate2: str
    total_count: int
    completed_count: int
    failed_count: int
    stats: BatchStatsResponse
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DetailResponse(BaseModel):
    """One batch line item."""

    id: int
    batch_id: str
    address: str | None
    amount: Decimal
    attempt_count: int
    sent: str
    last_result_code: str | None = None
    last_error_message: str | None = None
    decryption_error: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class ContractCreateRequest(BaseModel):
    """POST /v1/contracts: build a custodian co-signed transfer."""

    sender: str
    recipient: str
    amount: Decimal


class ContractCreateResponse(BaseModel):
    """Partially signed transaction the sender must sign offline."""

    contract_id: int
    serialized_transaction: str
    blockhash: str
    last_valid_block_height: int


class ContractFinalizeRequest(BaseModel):
    """POST /v1/contracts/{id}/finalize: attach the sender signature and submit."""

    public_key: str
    signature: str
    transaction: str


class ContractFinalizeResponse(BaseModel):
    """Outcome of a finalize; ``confirmed`` is False when confirmation is still open."""

    contract_id: int
    tx_id: str
    status: str
    confirmed: bool
