"""V1 contract endpoints: two-phase dual-signature transfers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from token_custody.api.dependencies import get_engine
from token_custody.api.v1.schemas import (
    ContractCreateRequest,
    ContractCreateResponse,
    ContractFinalizeRequest,
    ContractFinalizeResponse,
)
from token_custody.engine.client import CustodyEngine  # noqa: TC001
from token_custody.engine.services.custody_flow import CounterpartySignature

router = APIRouter(tags=["contract"])


@router.post("/contracts", status_code=201)
async def create_contract(
    engine: Annotated[CustodyEngine, Depends(get_engine)],
    body: ContractCreateRequest,
) -> dict:
    """Build a transfer co-signed by the custodian as fee payer."""
    created = await engine.custody_flow.create(body.sender, body.recipient, body.amount)
    return ContractCreateResponse(
        contract_id=created.contract_id,
        serialized_transaction=created.serialized_transaction,
        blockhash=created.expiry.blockhash,
        last_valid_block_height=created.expiry.last_valid_block_height,
    ).model_dump(mode="json")


@router.post("/contracts/{contract_id}/finalize")
async def finalize_contract(
    contract_id: int,
    engine: Annotated[CustodyEngine, Depends(get_engine)],
    body: ContractFinalizeRequest,
) -> dict:
    """Attach the sender's signature, submit, and mark the contract finalized."""
    result = await engine.custody_flow.finalize(
        contract_id,
        CounterpartySignature(
            public_key=body.public_key,
            signature=body.signature,
            transaction=body.transaction,
        ),
    )
    return ContractFinalizeResponse(
        contract_id=result.contract_id,
        tx_id=result.tx_id,
        status=result.status,
        confirmed=result.confirmed,
    ).model_dump(mode="json")
