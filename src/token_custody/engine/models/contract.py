"""Contract model: a dual-signature single transfer."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[Decimal]

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from token_custody.engine.models.base import FLAG_NO, Base, TimestampMixin


class Contract(Base, TimestampMixin):
    """A single transfer awaiting (or having received) its counterparty signature.

    ``signed_or_not2`` flips to Y exactly once, on finalize. Finalize only
    accepts the transaction stored in ``partial_tx_data``.
    """

    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender: Mapped[str] = mapped_column(String(44), nullable=False, comment="Token owner")
    recipient: Mapped[str] = mapped_column(String(44), nullable=False, comment="Destination")
    feepayer: Mapped[str] = mapped_column(
        String(44), nullable=False, comment="Custodian paying the fee"
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, comment="Token amount"
    )
    partial_tx_data: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Fee payer signed transaction issued on create (base64)"
    )
    signed_or_not1: Mapped[str] = mapped_column(
        String(1), nullable=False, default=FLAG_NO, comment="Sender-side signature present"
    )
    signed_or_not2: Mapped[str] = mapped_column(
        String(1), nullable=False, default=FLAG_NO, comment="Finalizing signature present"
    )

    def __repr__(self) -> str:
        return f"<Contract id={self.id} signed={self.signed_or_not1}/{self.signed_or_not2}>"
