"""Error taxonomy shared by the stores, the flows and the HTTP boundary."""

from token_custody.errors.custody_errors import (
    ConflictError,
    CustodyError,
    DecryptionError,
    DependencyError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from token_custody.errors.ledger_errors import LedgerError

__all__ = [
    "ConflictError",
    "CustodyError",
    "DecryptionError",
    "DependencyError",
    "DuplicateError",
    "LedgerError",
    "NotFoundError",
    "ValidationError",
]
