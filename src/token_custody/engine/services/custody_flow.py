"""Custody transaction flow: two-phase create / finalize of a single transfer.

``create`` builds a transfer whose network fee the custodian pays, signs the
fee payer slot and persists a Contract. The counterparty signs the returned
transaction offline. ``finalize`` attaches that signature, checks the
transaction is fully signed, submits it and marks the Contract finalized
exactly once.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import update

from token_custody.engine.models.base import FLAG_NO, FLAG_YES
from token_custody.engine.models.contract import Contract
from token_custody.engine.services.audit_log import CATE_CONTRACT, CATE_FINALIZE
from token_custody.errors.custody_errors import ConflictError, CustodyError
from token_custody.errors.definitions import (
    ErrAlreadySubmitted,
    ErrBlockhashExpired,
    ErrContractAlreadyProcessed,
    ErrContractNotFound,
    ErrInsufficientFunds,
    ErrInsufficientSignatures,
    ErrInvalidSignature,
    ErrSubmitFailed,
    ErrTransactionMismatch,
)
from token_custody.errors.ledger_errors import LedgerError
from token_custody.ledger.keys import base58_decode, decode_pubkey
from token_custody.ledger.transaction import Transaction
from token_custody.utils.validation import parse_amount, validate_address

if TYPE_CHECKING:
    from decimal import Decimal

    from token_custody.engine.client import CustodyEngine
    from token_custody.errors.custody_errors import DependencyError

logger = logging.getLogger(__name__)

API_CREATE = "contract_create"
API_FINALIZE = "contract_finalize"


@dataclass(frozen=True)
class ExpiryMetadata:
    """When a partially signed transaction stops being submittable."""

    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class CreatedContract:
    """Result of :meth:`CustodyTransactionFlow.create`."""

    contract_id: int
    serialized_transaction: str
    expiry: ExpiryMetadata


@dataclass(frozen=True)
class CounterpartySignature:
    """The counterparty's signature over the contract transaction.

    Attributes:
        public_key: Base58 key of the signer (the contract sender).
        signature: Base58 or base64 Ed25519 signature.
        transaction: Base64 transaction as returned by ``create``.
    """

    public_key: str
    signature: str
    transaction: str


@dataclass(frozen=True)
class FinalizeResult:
    """Result of :meth:`CustodyTransactionFlow.finalize`.

    ``confirmed`` is False when confirmation timed out or failed after the
    ledger accepted the transaction; the transfer is still submitted.
    """

    contract_id: int
    tx_id: str
    status: str
    confirmed: bool


def classify_submit_error(exc: LedgerError) -> DependencyError:
    """Map a ledger rejection onto a user-facing error."""
    text = exc.message.lower()
    if "insufficient funds" in text or "insufficient lamports" in text:
        return ErrInsufficientFunds
    if "blockhash not found" in text or "block height exceeded" in text:
        return ErrBlockhashExpired
    if "already been processed" in text or "already processed" in text:
        return ErrAlreadySubmitted
    return ErrSubmitFailed


def _decode_signature(text: str) -> bytes:
    """Accept a signature in Base58 (Solana's usual form) or base64."""
    try:
        raw = base58_decode(text)
    except ValueError:
        raw = b""
    if len(raw) == 64:
        return raw
    try:
        raw = base64.b64decode(text, validate=True)
    except binascii.Error:
        raise ErrInvalidSignature from None
    if len(raw) != 64:
        raise ErrInvalidSignature
    return raw


class CustodyTransactionFlow:
    """Dual-custody single transfers."""

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        sender: str,
        recipient: str,
        amount: Decimal | str | int,
    ) -> CreatedContract:
        """Build a custodian co-signed transfer and persist its Contract.

        Every call creates a new Contract.

        Raises:
            ValidationError: If an address or the amount is malformed.
            LedgerError: If the transaction cannot be built.
        """
        engine = self._engine
        validate_address(sender)
        validate_address(recipient)
        value = parse_amount(amount, decimals=engine.config.ledger.token_decimals)
        fee_payer = engine.ledger.custodian_address

        partial = await engine.ledger.build_and_partial_sign(sender, recipient, value, fee_payer)

        contract = Contract(
            sender=sender,
            recipient=recipient,
            feepayer=fee_payer,
            amount=value,
            partial_tx_data=partial.serialized_tx,
            signed_or_not1=FLAG_NO,
            signed_or_not2=FLAG_NO,
        )
        async with engine.datastore.transaction() as session:
            session.add(contract)

        await engine.audit_log.write(
            api_name=API_CREATE,
            success=True,
            cate1=CATE_CONTRACT,
            request_id=str(contract.id),
            result_code="200",
            content={"amount": str(value), "blockhash": partial.blockhash},
        )
        logger.info("Created contract %d for %s tokens", contract.id, value)
        return CreatedContract(
            contract_id=contract.id,
            serialized_transaction=partial.serialized_tx,
            expiry=ExpiryMetadata(
                blockhash=partial.blockhash,
                last_valid_block_height=partial.last_valid_block_height,
            ),
        )

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def finalize(
        self, contract_id: int, counterparty: CounterpartySignature
    ) -> FinalizeResult:
        """Attach the counterparty signature, submit and mark finalized.

        An audit entry is written whether this succeeds or fails.

        Raises:
            NotFoundError: If the contract doesn't exist.
            ConflictError: If the contract was already finalized.
            ValidationError: If the signature or transaction is unusable, or
                the transaction is still missing signatures.
            DependencyError: If the ledger rejects the submission.
        """
        metrics = self._engine.metrics
        started = time.monotonic()
        error: Exception | None = None
        result: FinalizeResult | None = None
        try:
            if metrics is not None:
                with metrics.track_finalize():
                    result = await self._finalize(contract_id, counterparty)
            else:
                result = await self._finalize(contract_id, counterparty)
            return result
        except Exception as exc:
            error = exc
            raise
        finally:
            if metrics is not None:
                metrics.record_finalize(self._outcome(result, error))
            await self._audit_finalize(contract_id, started, result, error)

    async def _finalize(
        self, contract_id: int, counterparty: CounterpartySignature
    ) -> FinalizeResult:
        engine = self._engine
        async with engine.datastore.session() as session:
            contract = await session.get(Contract, contract_id)
        if contract is None:
            raise ErrContractNotFound
        if contract.signed_or_not2 == FLAG_YES:
            raise ErrContractAlreadyProcessed

        tx = self._attach_signature(contract, counterparty)
        if tx.signature_count < tx.required_signers:
            raise ErrInsufficientSignatures

        try:
            submitted = await engine.ledger.submit(tx.to_base64())
        except LedgerError as exc:
            logger.warning("Contract %d submission rejected: %s", contract_id, exc.message)
            raise classify_submit_error(exc) from exc

        async with engine.datastore.transaction() as session:
            outcome = await session.execute(
                update(Contract)
                .where(Contract.id == contract_id, Contract.signed_or_not2 == FLAG_NO)
                .values(signed_or_not1=FLAG_YES, signed_or_not2=FLAG_YES)
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount == 0:
                raise ErrContractAlreadyProcessed

        confirmed, status = await self._confirm(contract_id, submitted.tx_id)
        logger.info("Contract %d finalized as %s (%s)", contract_id, submitted.tx_id, status)
        return FinalizeResult(
            contract_id=contract_id,
            tx_id=submitted.tx_id,
            status=status,
            confirmed=confirmed,
        )

    def _attach_signature(
        self, contract: Contract, counterparty: CounterpartySignature
    ) -> Transaction:
        """Rebuild the contract transaction with the counterparty signature.

        The returned transaction must carry exactly the message issued by
        ``create`` for this contract (same accounts, amount and blockhash).

        Raises:
            ValidationError: If the transaction or signature does not belong
                to this contract.
        """
        try:
            tx = Transaction.from_base64(counterparty.transaction)
        except ValueError:
            raise ErrTransactionMismatch from None
        issued = Transaction.from_base64(contract.partial_tx_data)
        if tx.message_bytes() != issued.message_bytes():
            raise ErrTransactionMismatch
        try:
            fee_payer = decode_pubkey(contract.feepayer)
            signer = decode_pubkey(counterparty.public_key)
        except ValueError:
            raise ErrInvalidSignature from None
        if tx.message.fee_payer != fee_payer or counterparty.public_key != contract.sender:
            raise ErrTransactionMismatch
        if not tx.verify_signatures():
            raise ErrInvalidSignature
        try:
            tx.add_signature(signer, _decode_signature(counterparty.signature))
        except ValueError:
            raise ErrInvalidSignature from None
        return tx

    async def _confirm(self, contract_id: int, tx_id: str) -> tuple[bool, str]:
        """Wait for confirmation; problems are logged and never raised."""
        cfg = self._engine.config.custody
        try:
            confirmation = await asyncio.wait_for(
                self._engine.ledger.confirm(
                    tx_id,
                    timeout=cfg.confirm_timeout,
                    commitment=cfg.confirm_commitment.value,
                ),
                timeout=cfg.confirm_timeout,
            )
        except TimeoutError:
            logger.warning("Contract %d: confirmation of %s timed out", contract_id, tx_id)
            return False, "timeout"
        except CustodyError as exc:
            logger.warning("Contract %d: confirmation of %s failed: %s", contract_id, tx_id, exc)
            return False, "error"
        if not confirmation.confirmed:
            logger.warning(
                "Contract %d: %s not confirmed (%s)", contract_id, tx_id, confirmation.status
            )
        return confirmation.confirmed, confirmation.status

    @staticmethod
    def _outcome(result: FinalizeResult | None, error: Exception | None) -> str:
        if result is not None:
            return "success" if result.confirmed else "unconfirmed"
        if isinstance(error, ConflictError):
            return "conflict"
        return "error"

    async def _audit_finalize(
        self,
        contract_id: int,
        started: float,
        result: FinalizeResult | None,
        error: Exception | None,
    ) -> None:
        status_code = getattr(error, "status_code", 500)
        error_code = getattr(error, "code", type(error).__name__)
        if result is not None:
            content: dict[str, str] | None = {"tx_id": result.tx_id, "status": result.status}
        elif error is not None and error.__cause__ is not None:
            # Classified ledger rejections keep the ledger's own text here
            content = {"cause": str(error.__cause__)[:500]}
        else:
            content = None
        try:
            await self._engine.audit_log.write(
                api_name=API_FINALIZE,
                success=result is not None,
                cate1=CATE_CONTRACT,
                cate2=CATE_FINALIZE,
                request_id=str(contract_id),
                result_code=str(status_code) if error is not None else "200",
                latency_ms=int((time.monotonic() - started) * 1000),
                error_code=error_code if error is not None else None,
                error_message=str(error)[:500] if error is not None else None,
                content=content,
            )
        except Exception:
            logger.exception("Could not audit finalize of contract %d", contract_id)
