"""AuditLog model: append-only record of core operations."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from token_custody.engine.models.base import Base


class AuditLog(Base):
    """One audited operation and its outcome. Rows are never updated."""

    __tablename__ = "audit_logs"
    __mapper_args__ = {"eager_defaults": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cate1: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    cate2: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    request_id: Mapped[str] = mapped_column(
        String(64), nullable=False, default="", index=True, comment="Batch or contract id"
    )
    api_name: Mapped[str] = mapped_column(String(100), nullable=False, comment="Operation name")
    req_status: Mapped[str] = mapped_column(
        String(1), nullable=False, comment="Y on success, N on failure"
    )
    result_code: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    content: Mapped[str | None] = mapped_column(
        Text, nullable=True, default=None, comment="Operation parameters / result (JSON)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
