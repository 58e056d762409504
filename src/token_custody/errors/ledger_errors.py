"""Ledger transport errors."""

from __future__ import annotations

from token_custody.errors.custody_errors import DependencyError


class LedgerError(DependencyError):
    """Error returned by (or while talking to) the ledger RPC node.

    Attributes:
        rpc_code: JSON-RPC error code when the node answered with one.
    """

    def __init__(self, message: str, *, rpc_code: int | None = None) -> None:
        super().__init__(message, code="ledger-error")
        self.rpc_code = rpc_code
