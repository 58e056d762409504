"""Ledger client result types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BlockhashInfo:
    """A recent blockhash and the last block height it stays valid for."""

    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class PartialTransaction:
    """A fee-payer co-signed transaction awaiting its remaining signatures.

    Attributes:
        serialized_tx: Base64 wire encoding.
        blockhash: Recent blockhash the transaction was built against.
        last_valid_block_height: Height after which it can no longer land.
    """

    serialized_tx: str
    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one custodian-signed transfer attempt."""

    success: bool
    tx_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class SubmitResult:
    """Identifier assigned to an accepted transaction."""

    tx_id: str


@dataclass(frozen=True)
class ConfirmResult:
    """Confirmation state observed for a transaction.

    Attributes:
        confirmed: Whether the requested commitment was reached.
        status: Last observed status (``processed``/``confirmed``/
            ``finalized``/``failed``/``timeout``/``unknown``).
        error: Error reported by the ledger, if any.
    """

    confirmed: bool
    status: str
    error: str | None = None
