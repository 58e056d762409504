"""BatchDetail model: one recipient line item of a batch."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[Decimal]

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from token_custody.engine.models.base import FLAG_NO, Base, TimestampMixin

# Upper bound of last_error_message
MAX_ERROR_LENGTH = 500


class BatchDetail(Base, TimestampMixin):
    """A recipient line item.

    The wallet address is only ever stored as an encrypted envelope.
    ``attempt_count`` never decreases and ``sent`` only moves from N to Y.
    """

    __tablename__ = "batch_details"
    __table_args__ = (Index("ix_batch_details_batch_sent", "batch_id", "sent", "attempt_count"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("batch_requests.id"),
        nullable=False,
        index=True,
        comment="Owning batch",
    )
    wallet_address: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Encrypted recipient address envelope (JSON)"
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, comment="Token amount"
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Transfer attempts made"
    )
    sent: Mapped[str] = mapped_column(
        String(1), nullable=False, default=FLAG_NO, comment="Y once delivered"
    )
    last_result_code: Mapped[str | None] = mapped_column(
        String(16), nullable=True, default=None, comment="Result code of the last attempt"
    )
    last_error_message: Mapped[str | None] = mapped_column(
        String(MAX_ERROR_LENGTH), nullable=True, default=None, comment="Last attempt error"
    )

    def __repr__(self) -> str:
        return (
            f"<BatchDetail id={self.id} batch={self.batch_id} sent={self.sent} "
            f"attempts={self.attempt_count}>"
        )
