"""DealDisputeEvidence model: links, files and notes backing a dispute."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import DealDisputeEvidenceType

if TYPE_CHECKING:
    from src.models.deal_dispute import DealDispute


class DealDisputeEvidence(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "deal_dispute_evidence"

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("deal_disputes.id", ondelete="CASCADE"),
        nullable=False,
    )
    uploaded_by_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    type: Mapped[DealDisputeEvidenceType] = mapped_column(
        nullable=False, server_default="LINK"
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    label: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    dispute: Mapped[DealDispute] = relationship(
        "DealDispute", back_populates="evidence", lazy="noload"
    )

    __table_args__ = (
        Index("ix_deal_dispute_evidence_dispute_id", "dispute_id", "created_at"),
    )
