"""In-memory ledger client for development and tests.

Builds and verifies real transactions (so the signature protocol is
exercised end to end) but settles nothing. Failures can be scripted per
recipient address.
"""

from __future__ import annotations

import asyncio
import os
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from token_custody.config.settings import Commitment
from token_custody.errors.ledger_errors import LedgerError
from token_custody.ledger.client import (
    CustodianCredentials,
    LedgerClient,
    build_transfer_instructions,
    to_base_units,
)
from token_custody.ledger.keys import Keypair, base58_encode, decode_pubkey
from token_custody.ledger.models import (
    ConfirmResult,
    PartialTransaction,
    SubmitResult,
    TransferResult,
)
from token_custody.ledger.transaction import Transaction

if TYPE_CHECKING:
    from decimal import Decimal

_BLOCK_HEIGHT = 1_000
_BLOCKHASH_LIFETIME = 150


@dataclass(frozen=True)
class RecordedTransfer:
    """A settled custodian transfer."""

    address: str
    amount: Decimal
    tx_id: str


class InMemoryLedgerClient(LedgerClient):
    """Ledger double with scriptable failures.

    Usage::

        ledger = InMemoryLedgerClient()
        ledger.fail_next(address, times=2)
        result = await ledger.transfer(address, Decimal("1"))  # fails
    """

    def __init__(
        self,
        credentials: CustodianCredentials | None = None,
        *,
        decimals: int = 9,
        mint: bytes | None = None,
    ) -> None:
        self._credentials = credentials or CustodianCredentials(Keypair.generate())
        self._decimals = decimals
        self._mint = mint or Keypair.generate().public_key
        self._pending_failures: Counter[str] = Counter()
        self._always_fail: dict[str, str] = {}
        self.attempts: Counter[str] = Counter()
        self.transfers: list[RecordedTransfer] = []
        self.submitted: dict[str, str] = {}
        self.submit_error: str | None = None
        self.confirm_delay: float = 0.0
        self.confirm_error: str | None = None

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def fail_next(self, address: str, times: int = 1) -> None:
        """Make the next *times* transfers to *address* fail."""
        self._pending_failures[address] += times

    def fail_always(self, address: str, error: str = "simulated transfer failure") -> None:
        """Make every transfer to *address* fail with *error*."""
        self._always_fail[address] = error

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    @property
    def custodian_address(self) -> str:
        """Address of the custodian fee payer."""
        return self._credentials.address

    @property
    def custodian_keypair(self) -> Keypair:
        """The custodian keypair (tests use it to inspect signatures)."""
        return self._credentials.keypair

    async def build_and_partial_sign(
        self,
        sender: str,
        recipient: str,
        amount: Decimal,
        fee_payer: str,
    ) -> PartialTransaction:
        """Build and fee-payer sign a transfer against a random blockhash."""
        if fee_payer != self.custodian_address:
            msg = "fee payer must be the custodian"
            raise ValueError(msg)
        keypair = self._credentials.keypair
        blockhash = os.urandom(32)
        tx = Transaction.new(
            keypair.public_key,
            build_transfer_instructions(
                fee_payer=keypair.public_key,
                owner=decode_pubkey(sender),
                recipient=decode_pubkey(recipient),
                mint=self._mint,
                amount=to_base_units(amount, self._decimals),
                decimals=self._decimals,
            ),
            blockhash,
        )
        tx.sign(keypair)
        return PartialTransaction(
            serialized_tx=tx.to_base64(),
            blockhash=base58_encode(blockhash),
            last_valid_block_height=_BLOCK_HEIGHT + _BLOCKHASH_LIFETIME,
        )

    async def transfer(self, address: str, amount: Decimal) -> TransferResult:
        """Record a transfer unless a failure is scripted for *address*."""
        self.attempts[address] += 1
        await asyncio.sleep(0)
        if address in self._always_fail:
            return TransferResult(success=False, error=self._always_fail[address])
        if self._pending_failures[address] > 0:
            self._pending_failures[address] -= 1
            return TransferResult(success=False, error="simulated transient failure")
        tx_id = base58_encode(os.urandom(64))
        self.transfers.append(RecordedTransfer(address=address, amount=amount, tx_id=tx_id))
        return TransferResult(success=True, tx_id=tx_id)

    async def submit(self, serialized_tx: str) -> SubmitResult:
        """Accept a fully and validly signed transaction exactly once.

        Raises:
            LedgerError: On malformed, unsigned or duplicate transactions,
                or when ``submit_error`` is set.
        """
        try:
            tx = Transaction.from_base64(serialized_tx)
        except ValueError as exc:
            raise LedgerError(f"failed to deserialize transaction: {exc}") from exc
        if tx.signature_count < tx.required_signers or not tx.verify_signatures():
            msg = "Transaction signature verification failure"
            raise LedgerError(msg)
        if self.submit_error is not None:
            raise LedgerError(self.submit_error)
        if tx.tx_id in self.submitted:
            msg = "This transaction has already been processed"
            raise LedgerError(msg)
        self.submitted[tx.tx_id] = serialized_tx
        return SubmitResult(tx_id=tx.tx_id)

    async def confirm(
        self,
        tx_id: str,
        *,
        timeout: float,
        commitment: str = Commitment.CONFIRMED.value,
    ) -> ConfirmResult:
        """Confirm submitted transactions after ``confirm_delay`` seconds."""
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if self.confirm_error is not None:
            raise LedgerError(self.confirm_error)
        if tx_id not in self.submitted:
            return ConfirmResult(confirmed=False, status="unknown")
        return ConfirmResult(confirmed=True, status=commitment)
