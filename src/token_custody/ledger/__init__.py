"""Ledger access: key handling, transaction codec and ledger clients."""

from token_custody.ledger.client import (
    CustodianCredentials,
    LedgerClient,
    SolanaLedgerClient,
    create_ledger_client,
)
from token_custody.ledger.memory import InMemoryLedgerClient

__all__ = [
    "CustodianCredentials",
    "InMemoryLedgerClient",
    "LedgerClient",
    "SolanaLedgerClient",
    "create_ledger_client",
]
