"""Solana JSON-RPC HTTP client.

Provides an async HTTP client for the subset of the Solana RPC API the
ledger client needs:
- ``getLatestBlockhash``: recent blockhash and its expiry height
- ``sendTransaction``: submit a base64 wire transaction
- ``getSignatureStatuses``: confirmation state by signature
- ``getBlockHeight``: current block height
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

import httpx

from token_custody.errors.ledger_errors import LedgerError
from token_custody.ledger.models import BlockhashInfo

if TYPE_CHECKING:
    from token_custody.config.settings import LedgerConfig


class SolanaRPC:
    """Async JSON-RPC client for a Solana node.

    Usage::

        rpc = SolanaRPC(config)
        await rpc.connect()
        try:
            info = await rpc.get_latest_blockhash()
        finally:
            await rpc.close()
    """

    def __init__(self, config: LedgerConfig) -> None:
        """Initialize the RPC client.

        Args:
            config: Ledger configuration (rpc_url, commitment, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._config.rpc_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=self._config.request_timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_latest_blockhash(self, commitment: str | None = None) -> BlockhashInfo:
        """Fetch a recent blockhash.

        Raises:
            LedgerError: On HTTP or RPC errors.
        """
        result = await self._call(
            "getLatestBlockhash",
            [{"commitment": commitment or self._config.commitment.value}],
        )
        value = result["value"]
        return BlockhashInfo(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def send_transaction(self, serialized_tx: str) -> str:
        """Submit a base64 wire transaction.

        Returns:
            The transaction signature (Base58).

        Raises:
            LedgerError: If the node rejects the transaction.
        """
        result = await self._call(
            "sendTransaction",
            [
                serialized_tx,
                {
                    "encoding": "base64",
                    "preflightCommitment": self._config.commitment.value,
                },
            ],
        )
        return str(result)

    async def get_signature_statuses(self, signatures: list[str]) -> list[dict[str, Any] | None]:
        """Look up confirmation statuses, ``None`` for unknown signatures."""
        result = await self._call(
            "getSignatureStatuses",
            [signatures, {"searchTransactionHistory": False}],
        )
        return list(result["value"])

    async def get_block_height(self, commitment: str | None = None) -> int:
        """Return the current block height."""
        result = await self._call(
            "getBlockHeight",
            [{"commitment": commitment or self._config.commitment.value}],
        )
        return int(result)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Solana RPC not connected. Call connect() first."
            raise LedgerError(msg)
        return self._client

    async def _call(self, method: str, params: list[Any]) -> Any:
        client = self._ensure_connected()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await client.post("", json=payload)
        except httpx.HTTPError as exc:
            raise LedgerError(f"RPC {method} failed: {exc}") from exc

        if response.status_code != 200:
            raise LedgerError(f"RPC {method} failed ({response.status_code}): {response.text}")
        try:
            body = response.json()
        except ValueError as exc:
            raise LedgerError(f"RPC {method} returned invalid JSON") from exc

        if "error" in body:
            self._raise_rpc_error(method, body["error"])
        if "result" not in body:
            raise LedgerError(f"RPC {method} returned no result")
        return body["result"]

    @staticmethod
    def _raise_rpc_error(method: str, error: dict[str, Any]) -> None:
        """Raise a LedgerError carrying the node message and simulation logs."""
        message = str(error.get("message", "unknown error"))
        data = error.get("data")
        logs = data.get("logs") if isinstance(data, dict) else None
        if logs:
            message = f"{message} | " + " ".join(str(line) for line in logs)
        raise LedgerError(f"RPC {method} error: {message}", rpc_code=error.get("code"))
