"""Tests for error classes and pre-defined error instances."""

from __future__ import annotations

import pytest

from token_custody.errors import definitions as defs
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

# ---------------------------------------------------------------------------
# CustodyError base class
# ---------------------------------------------------------------------------


class TestCustodyError:
    def test_default_attributes(self) -> None:
        err = CustodyError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.status_code == 500
        assert err.code == "custody-error"

    def test_custom_attributes(self) -> None:
        err = CustodyError("bad request", status_code=400, code="bad-req")
        assert err.status_code == 400
        assert err.code == "bad-req"

    def test_is_exception(self) -> None:
        with pytest.raises(CustodyError, match="boom"):
            raise CustodyError("boom")


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


class TestTaxonomy:
    @pytest.mark.parametrize(
        ("cls", "status"),
        [
            (ValidationError, 400),
            (NotFoundError, 404),
            (ConflictError, 409),
            (DuplicateError, 409),
            (DependencyError, 502),
        ],
    )
    def test_status_codes(self, cls: type[CustodyError], status: int) -> None:
        err = cls("x")
        assert isinstance(err, CustodyError)
        assert err.status_code == status

    def test_duplicate_is_conflict(self) -> None:
        assert isinstance(DuplicateError("dup"), ConflictError)

    def test_decryption_default_message(self) -> None:
        err = DecryptionError()
        assert err.status_code == 500
        assert err.code == "decryption-error"
        assert err.message == "failed to decrypt value"

    def test_dependency_custom_status(self) -> None:
        assert DependencyError("slow", status_code=504).status_code == 504


class TestLedgerError:
    def test_defaults(self) -> None:
        err = LedgerError("node down")
        assert isinstance(err, DependencyError)
        assert err.status_code == 502
        assert err.code == "ledger-error"
        assert err.rpc_code is None

    def test_rpc_code(self) -> None:
        assert LedgerError("rejected", rpc_code=-32002).rpc_code == -32002


# ---------------------------------------------------------------------------
# Predefined instances
# ---------------------------------------------------------------------------


class TestDefinitions:
    def test_all_are_custody_errors(self) -> None:
        errors = [v for k, v in vars(defs).items() if k.startswith("Err")]
        assert errors
        for err in errors:
            assert isinstance(err, CustodyError)
            assert err.code
            assert err.message

    def test_codes_unique(self) -> None:
        codes = [v.code for k, v in vars(defs).items() if k.startswith("Err")]
        assert len(codes) == len(set(codes))

    def test_kinds(self) -> None:
        assert isinstance(defs.ErrInvalidBatchID, ValidationError)
        assert isinstance(defs.ErrInsufficientSignatures, ValidationError)
        assert isinstance(defs.ErrBatchNotFound, NotFoundError)
        assert isinstance(defs.ErrContractAlreadyProcessed, ConflictError)
        assert isinstance(defs.ErrBlockhashExpired, DependencyError)
