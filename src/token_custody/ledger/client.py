"""Ledger client interface and the Solana network implementation.

The core only talks to :class:`LedgerClient`. Which implementation backs it
is decided once at startup by :func:`create_ledger_client`.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Self

from token_custody.config.settings import Commitment, LedgerBackend
from token_custody.errors.custody_errors import CustodyError
from token_custody.ledger.instructions import (
    create_associated_token_account_idempotent,
    transfer_checked,
)
from token_custody.ledger.keys import (
    Keypair,
    associated_token_address,
    base58_decode,
    decode_pubkey,
)
from token_custody.ledger.models import (
    ConfirmResult,
    PartialTransaction,
    SubmitResult,
    TransferResult,
)
from token_custody.ledger.rpc import SolanaRPC
from token_custody.ledger.transaction import Instruction, Transaction

if TYPE_CHECKING:
    from token_custody.config.settings import LedgerConfig

logger = logging.getLogger(__name__)

_COMMITMENT_RANK = {
    Commitment.PROCESSED.value: 0,
    Commitment.CONFIRMED.value: 1,
    Commitment.FINALIZED.value: 2,
}


def commitment_reached(observed: str | None, wanted: str) -> bool:
    """Check whether an observed confirmation status satisfies *wanted*."""
    if observed is None:
        return False
    return _COMMITMENT_RANK.get(observed, -1) >= _COMMITMENT_RANK[wanted]


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a token amount into integer base units.

    Raises:
        ValueError: If *amount* has more precision than the mint allows.
    """
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        msg = f"Amount {amount} exceeds {decimals} decimal places"
        raise ValueError(msg)
    return int(scaled)


def build_transfer_instructions(
    *,
    fee_payer: bytes,
    owner: bytes,
    recipient: bytes,
    mint: bytes,
    amount: int,
    decimals: int,
) -> list[Instruction]:
    """Instructions moving *amount* from *owner*'s token account to *recipient*'s.

    The recipient token account is created first (idempotently) at the fee
    payer's expense.
    """
    recipient_account = associated_token_address(recipient, mint)
    return [
        create_associated_token_account_idempotent(
            payer=fee_payer,
            associated_account=recipient_account,
            owner=recipient,
            mint=mint,
        ),
        transfer_checked(
            source=associated_token_address(owner, mint),
            mint=mint,
            destination=recipient_account,
            owner=owner,
            amount=amount,
            decimals=decimals,
        ),
    ]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustodianCredentials:
    """The custodian signing key, loaded once and injected into ledger clients."""

    keypair: Keypair

    @classmethod
    def from_base58(cls, secret: str) -> Self:
        """Load credentials from a Base58 secret key.

        Raises:
            ValueError: If the secret is empty or malformed.
        """
        if not secret:
            msg = "custodian secret key is not configured"
            raise ValueError(msg)
        return cls(keypair=Keypair.from_base58(secret))

    @property
    def address(self) -> str:
        """Custodian (fee payer) address."""
        return self.keypair.address


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class LedgerClient(abc.ABC):
    """Operations the custody core needs from the ledger."""

    async def connect(self) -> None:  # noqa: B027
        """Acquire network resources, if any."""

    async def close(self) -> None:  # noqa: B027
        """Release network resources, if any."""

    @property
    @abc.abstractmethod
    def custodian_address(self) -> str:
        """Address of the custodian fee payer."""

    @abc.abstractmethod
    async def build_and_partial_sign(
        self,
        sender: str,
        recipient: str,
        amount: Decimal,
        fee_payer: str,
    ) -> PartialTransaction:
        """Build a sender-to-recipient transfer co-signed by the fee payer."""

    @abc.abstractmethod
    async def transfer(self, address: str, amount: Decimal) -> TransferResult:
        """Send *amount* from the custodian to *address*.

        Failures are reported in the result rather than raised.
        """

    @abc.abstractmethod
    async def submit(self, serialized_tx: str) -> SubmitResult:
        """Submit a fully signed base64 transaction.

        Raises:
            LedgerError: If the ledger rejects the transaction.
        """

    @abc.abstractmethod
    async def confirm(
        self,
        tx_id: str,
        *,
        timeout: float,
        commitment: str = Commitment.CONFIRMED.value,
    ) -> ConfirmResult:
        """Wait up to *timeout* seconds for *tx_id* to reach *commitment*."""


# ---------------------------------------------------------------------------
# Solana
# ---------------------------------------------------------------------------


class SolanaLedgerClient(LedgerClient):
    """Ledger client backed by a Solana RPC node."""

    def __init__(
        self,
        config: LedgerConfig,
        credentials: CustodianCredentials,
        *,
        rpc: SolanaRPC | None = None,
    ) -> None:
        if not config.token_mint:
            msg = "ledger token_mint is not configured"
            raise ValueError(msg)
        self._config = config
        self._credentials = credentials
        self._mint = decode_pubkey(config.token_mint)
        self._rpc = rpc or SolanaRPC(config)

    async def connect(self) -> None:
        """Open the RPC connection."""
        await self._rpc.connect()

    async def close(self) -> None:
        """Close the RPC connection."""
        await self._rpc.close()

    @property
    def custodian_address(self) -> str:
        """Address of the custodian fee payer."""
        return self._credentials.address

    async def build_and_partial_sign(
        self,
        sender: str,
        recipient: str,
        amount: Decimal,
        fee_payer: str,
    ) -> PartialTransaction:
        """Build a transfer from *sender* whose fee the custodian pays.

        The custodian signs its fee payer slot; the sender slot stays empty
        until the counterparty signs.

        Raises:
            ValueError: If *fee_payer* is not the custodian.
            LedgerError: If the blockhash cannot be fetched.
        """
        if fee_payer != self._credentials.address:
            msg = "fee payer must be the custodian"
            raise ValueError(msg)
        keypair = self._credentials.keypair
        info = await self._rpc.get_latest_blockhash()
        tx = Transaction.new(
            keypair.public_key,
            build_transfer_instructions(
                fee_payer=keypair.public_key,
                owner=decode_pubkey(sender),
                recipient=decode_pubkey(recipient),
                mint=self._mint,
                amount=to_base_units(amount, self._config.token_decimals),
                decimals=self._config.token_decimals,
            ),
            base58_decode(info.blockhash),
        )
        tx.sign(keypair)
        return PartialTransaction(
            serialized_tx=tx.to_base64(),
            blockhash=info.blockhash,
            last_valid_block_height=info.last_valid_block_height,
        )

    async def transfer(self, address: str, amount: Decimal) -> TransferResult:
        """Send tokens from the custodian account and wait for confirmation.

        Polls until the transaction reaches the configured commitment or its
        blockhash expires, so a failed result means the transfer can no
        longer land and retrying cannot double-pay.
        """
        keypair = self._credentials.keypair
        try:
            info = await self._rpc.get_latest_blockhash()
            tx = Transaction.new(
                keypair.public_key,
                build_transfer_instructions(
                    fee_payer=keypair.public_key,
                    owner=keypair.public_key,
                    recipient=decode_pubkey(address),
                    mint=self._mint,
                    amount=to_base_units(amount, self._config.token_decimals),
                    decimals=self._config.token_decimals,
                ),
                base58_decode(info.blockhash),
            )
            tx.sign(keypair)
            tx_id = await self._rpc.send_transaction(tx.to_base64())
            return await self._await_landing(tx_id, info.last_valid_block_height)
        except (CustodyError, ValueError) as exc:
            return TransferResult(success=False, error=str(exc))

    async def submit(self, serialized_tx: str) -> SubmitResult:
        """Submit a fully signed base64 transaction."""
        return SubmitResult(tx_id=await self._rpc.send_transaction(serialized_tx))

    async def confirm(
        self,
        tx_id: str,
        *,
        timeout: float,
        commitment: str = Commitment.CONFIRMED.value,
    ) -> ConfirmResult:
        """Poll signature status until *commitment* or *timeout*.

        Raises:
            LedgerError: If status polling itself fails.
        """
        last_status = "unknown"
        try:
            async with asyncio.timeout(timeout):
                while True:
                    (status,) = await self._rpc.get_signature_statuses([tx_id])
                    if status is not None:
                        if status.get("err") is not None:
                            return ConfirmResult(
                                confirmed=False, status="failed", error=str(status["err"])
                            )
                        last_status = status.get("confirmationStatus") or last_status
                        if commitment_reached(last_status, commitment):
                            return ConfirmResult(confirmed=True, status=last_status)
                    await asyncio.sleep(self._config.poll_interval)
        except TimeoutError:
            return ConfirmResult(confirmed=False, status="timeout")

    async def _await_landing(self, tx_id: str, last_valid_block_height: int) -> TransferResult:
        wanted = self._config.commitment.value
        while True:
            (status,) = await self._rpc.get_signature_statuses([tx_id])
            if status is not None:
                if status.get("err") is not None:
                    return TransferResult(success=False, tx_id=tx_id, error=str(status["err"]))
                if commitment_reached(status.get("confirmationStatus"), wanted):
                    return TransferResult(success=True, tx_id=tx_id)
            if await self._rpc.get_block_height() > last_valid_block_height:
                return TransferResult(
                    success=False, tx_id=tx_id, error="blockhash expired before confirmation"
                )
            await asyncio.sleep(self._config.poll_interval)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_ledger_client(
    config: LedgerConfig,
    credentials: CustodianCredentials | None = None,
) -> LedgerClient:
    """Instantiate the ledger client selected by ``config.backend``.

    Args:
        config: Ledger configuration.
        credentials: Custodian credentials; loaded from
            ``config.custodian_secret_key`` when omitted (and generated for
            the memory backend when none are configured).
    """
    if config.backend == LedgerBackend.MEMORY:
        from token_custody.ledger.memory import InMemoryLedgerClient

        if credentials is None and config.custodian_secret_key:
            credentials = CustodianCredentials.from_base58(config.custodian_secret_key)
        return InMemoryLedgerClient(credentials, decimals=config.token_decimals)

    if credentials is None:
        credentials = CustodianCredentials.from_base58(config.custodian_secret_key)
    logger.info("Using Solana ledger at %s as %s", config.rpc_url, credentials.address)
    return SolanaLedgerClient(config, credentials)
