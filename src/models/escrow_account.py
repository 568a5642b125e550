"""EscrowAccount model: escrowed funds backing a negotiation."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import EscrowStatus

if TYPE_CHECKING:
    from src.models.escrow_transaction import EscrowTransaction
    from src.models.negotiation import Negotiation


class EscrowAccount(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "escrow_accounts"

    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("negotiations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status: Mapped[EscrowStatus] = mapped_column(nullable=False, server_default="PENDING")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="EUR")
    expected_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    funded_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0"), server_default="0"
    )

    # Cumulative, only ever incremented
    released_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0"), server_default="0"
    )

    # Relationships
    negotiation: Mapped[Negotiation] = relationship(
        "Negotiation", back_populates="escrow_account", lazy="noload"
    )
    transactions: Mapped[list[EscrowTransaction]] = relationship(
        "EscrowTransaction", back_populates="escrow_account", lazy="noload"
    )

    __table_args__ = (
        Index("ix_escrow_accounts_status", "status"),
        CheckConstraint("released_amount >= 0", name="ck_escrow_accounts_released"),
        CheckConstraint("refunded_amount >= 0", name="ck_escrow_accounts_refunded"),
    )
