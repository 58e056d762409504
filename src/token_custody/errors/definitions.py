"""Predefined error instances raised across the service layer."""

from __future__ import annotations

from token_custody.errors.custody_errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)

# -- Validation ------------------------------------------------------------

ErrInvalidBatchID = ValidationError("batch id must be a well-formed UUID", code="invalid-batch-id")
ErrInvalidTotalCount = ValidationError("total count must be at least 1", code="invalid-total-count")
ErrInvalidStatus = ValidationError("unknown batch status", code="invalid-status")
ErrInvalidAddress = ValidationError("invalid wallet address", code="invalid-address")
ErrInvalidAmount = ValidationError(
    "amount must be positive with at most 9 decimal places", code="invalid-amount"
)
ErrEmptyRecipients = ValidationError("recipient list is empty", code="empty-recipients")
ErrInvalidLimit = ValidationError("limit must be between 1 and 10000", code="invalid-limit")
ErrInvalidSignature = ValidationError("counterparty signature is invalid", code="invalid-signature")
ErrInsufficientSignatures = ValidationError(
    "transaction does not carry all required signatures", code="insufficient-signatures"
)
ErrTransactionMismatch = ValidationError(
    "transaction does not belong to this contract", code="transaction-mismatch"
)

# -- Not Found -------------------------------------------------------------

ErrBatchNotFound = NotFoundError("batch not found", code="batch-not-found")
ErrDetailNotFound = NotFoundError("batch detail not found", code="detail-not-found")
ErrContractNotFound = NotFoundError("contract not found", code="contract-not-found")

# -- Conflict --------------------------------------------------------------

ErrContractAlreadyProcessed = ConflictError(
    "contract already processed", code="contract-already-processed"
)
ErrStatusRegression = ConflictError(
    "batch status can only move forward", code="status-regression"
)
ErrDetailFinished = ConflictError(
    "batch detail is already sent or out of attempts", code="detail-finished"
)

# -- Ledger submission -----------------------------------------------------

ErrInsufficientFunds = DependencyError(
    "insufficient token or fee balance for this transfer", code="insufficient-funds"
)
ErrBlockhashExpired = DependencyError(
    "transaction blockhash expired, create a new contract and sign again",
    code="blockhash-expired",
)
ErrAlreadySubmitted = DependencyError(
    "transaction was already processed by the ledger", code="already-processed"
)
ErrSubmitFailed = DependencyError("transaction submission failed", code="submit-failed")
