"""Input validation for batch ids, wallet addresses and token amounts."""

from __future__ import annotations

import re
import uuid
from decimal import Decimal, InvalidOperation

from token_custody.errors.definitions import (
    ErrInvalidAddress,
    ErrInvalidAmount,
    ErrInvalidBatchID,
)
from token_custody.ledger.keys import PUBKEY_LENGTH, base58_decode

TOKEN_DECIMALS = 9

_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_uuid(value: object) -> bool:
    """Return True if *value* is a UUID string in canonical hyphenated form."""
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


def validate_batch_id(value: object) -> str:
    """Return *value* in lower case or raise ``ErrInvalidBatchID``."""
    if not is_valid_uuid(value):
        raise ErrInvalidBatchID
    return str(value).lower()


def is_valid_address(value: object) -> bool:
    """Base58 alphabet, 32 to 44 characters, decoding to a 32-byte key."""
    if not isinstance(value, str) or _ADDRESS_RE.fullmatch(value) is None:
        return False
    return len(base58_decode(value)) == PUBKEY_LENGTH


def validate_address(value: object) -> str:
    """Return *value* unchanged or raise ``ErrInvalidAddress``."""
    if not is_valid_address(value):
        raise ErrInvalidAddress
    return str(value)


def parse_amount(value: object, *, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Parse a token amount.

    Accepts ``Decimal``, ``int``, ``str`` and ``float`` (through its
    shortest repr). The amount must be finite, strictly positive and carry
    at most *decimals* fractional digits.

    Returns:
        The amount as a ``Decimal``.

    Raises:
        ValidationError: If the amount is malformed or out of range.
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, str, float)):
        raise ErrInvalidAmount
    try:
        amount = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    except InvalidOperation as exc:
        raise ErrInvalidAmount from exc
    if not amount.is_finite() or amount <= 0:
        raise ErrInvalidAmount
    exponent = amount.normalize().as_tuple().exponent
    if isinstance(exponent, int) and -exponent > decimals:
        raise ErrInvalidAmount
    return amount


def mask_address(address: str) -> str:
    """Shorten an address for logs and audit records."""
    if len(address) <= 8:
        return address
    return f"{address[:4]}...{address[-4:]}"
