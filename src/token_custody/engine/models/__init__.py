"""Engine data models (SQLAlchemy ORM).

Import :data:`ALL_MODELS` for migration and table creation.
"""

from token_custody.engine.models.audit_log import AuditLog
from token_custody.engine.models.base import FLAG_NO, FLAG_YES, Base, TimestampMixin
from token_custody.engine.models.batch_detail import MAX_ERROR_LENGTH, BatchDetail
from token_custody.engine.models.batch_request import BatchRequest, BatchStatus
from token_custody.engine.models.contract import Contract

ALL_MODELS: list[type[Base]] = [
    BatchRequest,
    BatchDetail,
    Contract,
    AuditLog,
]

__all__ = [
    "ALL_MODELS",
    "FLAG_NO",
    "FLAG_YES",
    "MAX_ERROR_LENGTH",
    "AuditLog",
    "Base",
    "BatchDetail",
    "BatchRequest",
    "BatchStatus",
    "Contract",
    "TimestampMixin",
]
