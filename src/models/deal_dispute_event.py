"""DealDisputeEvent model: append-only audit trail for deal disputes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import DealDisputeEventType, DealDisputeStatus

if TYPE_CHECKING:
    from src.models.deal_dispute import DealDispute


class DealDisputeEvent(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "deal_dispute_events"

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("deal_disputes.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Position within the dispute's trail, 1-based and gap-free
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    type: Mapped[DealDisputeEventType] = mapped_column(nullable=False)
    status: Mapped[DealDisputeStatus | None] = mapped_column()
    message: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSON().with_variant(JSONB, "postgresql")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    dispute: Mapped[DealDispute] = relationship(
        "DealDispute", back_populates="events", lazy="noload"
    )

    __table_args__ = (
        UniqueConstraint("dispute_id", "sequence", name="uq_deal_dispute_events_sequence"),
        Index("ix_deal_dispute_events_type", "type"),
    )
