"""EscrowTransaction model: append-only ledger entry against an escrow account."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Numeric, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import EscrowTransactionType

if TYPE_CHECKING:
    from src.models.escrow_account import EscrowAccount


class EscrowTransaction(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "escrow_transactions"

    escrow_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[EscrowTransactionType] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSON().with_variant(JSONB, "postgresql")
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    escrow_account: Mapped[EscrowAccount] = relationship(
        "EscrowAccount", back_populates="transactions", lazy="noload"
    )

    __table_args__ = (
        Index("ix_escrow_transactions_account", "escrow_account_id", "occurred_at"),
        CheckConstraint("amount > 0", name="ck_escrow_transactions_amount"),
    )
