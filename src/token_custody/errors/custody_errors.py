"""CustodyError base class and the error kinds raised by the core."""

from __future__ import annotations


class CustodyError(Exception):
    """Base error for all token custody operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "custody-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ValidationError(CustodyError):
    """Malformed identifier, address or amount. Raised before any write."""

    def __init__(self, message: str, *, code: str = "validation-error") -> None:
        super().__init__(message, status_code=400, code=code)


class NotFoundError(CustodyError):
    """Unknown batch, line item or contract."""

    def __init__(self, message: str, *, code: str = "not-found") -> None:
        super().__init__(message, status_code=404, code=code)


class ConflictError(CustodyError):
    """Operation conflicts with the current persisted state."""

    def __init__(self, message: str, *, code: str = "conflict") -> None:
        super().__init__(message, status_code=409, code=code)


class DuplicateError(ConflictError):
    """A record with the same identifier already exists."""

    def __init__(self, message: str, *, code: str = "duplicate") -> None:
        super().__init__(message, code=code)


class DependencyError(CustodyError):
    """Store or ledger unavailable, or a classified ledger rejection."""

    def __init__(
        self, message: str, *, code: str = "dependency-error", status_code: int = 502
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)


class DecryptionError(CustodyError):
    """Ciphertext was tampered with or sealed under a different key."""

    def __init__(self, message: str = "failed to decrypt value") -> None:
        super().__init__(message, status_code=500, code="decryption-error")
