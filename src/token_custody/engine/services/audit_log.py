"""Audit log service: append and query operation records."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from token_custody.engine.models.audit_log import AuditLog
from token_custody.engine.models.base import FLAG_NO, FLAG_YES

if TYPE_CHECKING:
    from token_custody.engine.client import CustodyEngine


# Category labels of audit entries
CATE_COMPANY_SEND = "company_send"
CATE_CONTRACT = "contract"
CATE_TRANSFER = "transfer"
CATE_FINALIZE = "finalize"


class AuditLogService:
    """Append-only audit trail."""

    def __init__(self, engine: CustodyEngine) -> None:
        self._engine = engine

    async def write(
        self,
        *,
        api_name: str,
        success: bool,
        cate1: str = "",
        cate2: str = "",
        request_id: str = "",
        result_code: str = "",
        latency_ms: int | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        content: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Append one audit entry.

        Args:
            api_name: Operation being audited.
            success: Outcome, stored as ``req_status`` Y/N.
            cate1: Primary category label.
            cate2: Secondary category label.
            request_id: Batch or contract id the entry belongs to.
            result_code: Operation result code.
            latency_ms: Operation duration.
            error_code: Machine-readable error code.
            error_message: Error text, if the operation failed.
            content: Parameters or result, stored as JSON.

        Returns:
            The persisted AuditLog.
        """
        entry = AuditLog(
            cate1=cate1,
            cate2=cate2,
            request_id=request_id,
            api_name=api_name,
            req_status=FLAG_YES if success else FLAG_NO,
            result_code=result_code,
            latency_ms=latency_ms,
            error_code=error_code,
            error_message=error_message,
            content=json.dumps(content, default=str) if content is not None else None,
        )
        async with self._engine.datastore.transaction() as session:
            session.add(entry)
        return entry

    async def list_recent(self, limit: int = 100) -> list[AuditLog]:
        """Most recent entries first."""
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def list_by_request(self, request_id: str) -> list[AuditLog]:
        """All entries of one batch or contract, oldest first."""
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(AuditLog).where(AuditLog.request_id == request_id).order_by(AuditLog.id)
            )
            return list(result.scalars().all())
