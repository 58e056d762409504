"""BatchRequest model: the header row of one disbursement batch."""

from __future__ import annotations

import enum

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from token_custody.engine.models.base import Base, TimestampMixin


class BatchStatus(enum.StrEnum):
    """Batch lifecycle states. Transitions only move forward."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle (DONE and ERROR share the last)."""
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (BatchStatus.DONE, BatchStatus.ERROR)


_STATUS_RANK = {
    BatchStatus.PENDING: 0,
    BatchStatus.PROCESSING: 1,
    BatchStatus.DONE: 2,
    BatchStatus.ERROR: 2,
}


class BatchRequest(Base, TimestampMixin):
    """A disbursement batch with aggregate progress counters.

    ``completed_count`` and ``failed_count`` are only ever written by a full
    recompute over the batch's detail rows.
    """

    __tablename__ = "batch_requests"
    __table_args__ = (
        CheckConstraint(
            "completed_count + failed_count <= total_count", name="ck_batch_requests_counts"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="Batch UUID")
    cate1: Mapped[str] = mapped_column(
        String(100), nullable=False, default="", comment="Primary category label"
    )
    cate2: Mapped[str] = mapped_column(
        String(100), nullable=False, default="", comment="Secondary category label"
    )
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, comment="Recipient count")
    completed_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Items sent successfully"
    )
    failed_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Items out of attempts"
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BatchStatus.PENDING.value,
        index=True,
        comment="PENDING | PROCESSING | DONE | ERROR",
    )

    def __repr__(self) -> str:
        return (
            f"<BatchRequest id={self.id} status={self.status} "
            f"{self.completed_count}+{self.failed_count}/{self.total_count}>"
        )
