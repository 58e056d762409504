"""Tests for id, address and amount validation."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from token_custody.errors.custody_errors import ValidationError
from token_custody.errors.definitions import ErrInvalidAmount
from token_custody.utils.validation import (
    is_valid_address,
    is_valid_uuid,
    mask_address,
    parse_amount,
    validate_address,
    validate_batch_id,
)

_ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class TestBatchId:
    def test_valid(self) -> None:
        value = str(uuid.uuid4())
        assert is_valid_uuid(value)
        assert validate_batch_id(value) == value

    def test_upper_case_is_lowered(self) -> None:
        value = str(uuid.uuid4())
        assert is_valid_uuid(value.upper())
        assert validate_batch_id(value.upper()) == value

    @pytest.mark.parametrize(
        "value",
        ["", "abc", "12345678123456781234567812345678", None, 42, "{" + str(uuid.UUID(int=1)) + "}"],
    )
    def test_invalid(self, value: object) -> None:
        assert not is_valid_uuid(value)
        with pytest.raises(ValidationError):
            validate_batch_id(value)


class TestAddress:
    def test_valid(self) -> None:
        assert is_valid_address(_ADDRESS)
        assert validate_address(_ADDRESS) == _ADDRESS

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "short",
            "0xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",  # '0' not in alphabet
            "IxQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",  # 'I' not in alphabet
            _ADDRESS + "abc",
            "2" * 32,  # decodes to 23 bytes
            "1" * 44,  # decodes to 44 zero bytes
            None,
        ],
    )
    def test_invalid(self, value: object) -> None:
        assert not is_valid_address(value)
        with pytest.raises(ValidationError):
            validate_address(value)

    def test_mask(self) -> None:
        assert mask_address(_ADDRESS) == "9xQe...VFin"
        assert mask_address("abc") == "abc"


class TestAmount:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1", Decimal("1")),
            ("0.000000001", Decimal("0.000000001")),
            (5, Decimal("5")),
            (1.5, Decimal("1.5")),
            (0.1, Decimal("0.1")),
            (Decimal("2.50"), Decimal("2.50")),
        ],
    )
    def test_valid(self, value: object, expected: Decimal) -> None:
        assert parse_amount(value) == expected

    @pytest.mark.parametrize(
        "value",
        [0, -1, "0", "-0.5", "abc", "NaN", "Infinity", float("inf"), True, None, "0.0000000001"],
    )
    def test_invalid(self, value: object) -> None:
        with pytest.raises(type(ErrInvalidAmount)):
            parse_amount(value)

    def test_decimals_override(self) -> None:
        assert parse_amount("1.25", decimals=2) == Decimal("1.25")
        with pytest.raises(ValidationError):
            parse_amount("1.255", decimals=2)
