"""DealDispute model: escalation raised against a negotiation's escrow."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import DealDisputeCategory, DealDisputeSeverity, DealDisputeStatus

if TYPE_CHECKING:
    from src.models.deal_dispute_event import DealDisputeEvent
    from src.models.deal_dispute_evidence import DealDisputeEvidence
    from src.models.negotiation import Negotiation
    from src.models.user import User

# At most one dispute per negotiation may sit in one of these statuses. Kept as
# a literal SQL predicate so the partial unique index renders identically on
# PostgreSQL and SQLite.
ACTIVE_STATUS_PREDICATE = text(
    "status IN ('OPEN', 'UNDER_REVIEW', 'AWAITING_PARTIES', 'ESCALATED')"
)


class DealDispute(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "deal_disputes"

    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("negotiations.id", ondelete="CASCADE"),
        nullable=False,
    )
    raised_by_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Dispute details
    status: Mapped[DealDisputeStatus] = mapped_column(
        nullable=False, default=DealDisputeStatus.OPEN, server_default="OPEN"
    )
    severity: Mapped[DealDisputeSeverity] = mapped_column(
        nullable=False, server_default="MEDIUM"
    )
    category: Mapped[DealDisputeCategory] = mapped_column(
        nullable=False, server_default="ESCROW"
    )
    summary: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    requested_outcome: Mapped[str | None] = mapped_column(Text)

    # Financial: mutated only through relative increments in DisputeStore
    hold_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    counter_proposal_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    resolution_payout_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0"), server_default="0"
    )

    # SLA & lifecycle timestamps
    raised_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    sla_due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sla_breached_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    negotiation: Mapped[Negotiation] = relationship(
        "Negotiation", back_populates="disputes", lazy="noload"
    )
    raised_by: Mapped[User] = relationship(
        "User", foreign_keys=[raised_by_user_id], lazy="noload"
    )
    assigned_to: Mapped[User | None] = relationship(
        "User", foreign_keys=[assigned_to_user_id], lazy="noload"
    )
    events: Mapped[list[DealDisputeEvent]] = relationship(
        "DealDisputeEvent",
        back_populates="dispute",
        lazy="noload",
        order_by="DealDisputeEvent.sequence",
    )
    evidence: Mapped[list[DealDisputeEvidence]] = relationship(
        "DealDisputeEvidence",
        back_populates="dispute",
        lazy="noload",
        order_by="DealDisputeEvidence.created_at.desc()",
    )

    __table_args__ = (
        Index("ix_deal_disputes_negotiation_id", "negotiation_id"),
        Index("ix_deal_disputes_status", "status"),
        Index("ix_deal_disputes_sla_due_at", "sla_due_at"),
        Index(
            "uq_deal_disputes_active_negotiation",
            "negotiation_id",
            unique=True,
            postgresql_where=ACTIVE_STATUS_PREDICATE,
            sqlite_where=ACTIVE_STATUS_PREDICATE,
        ),
        CheckConstraint("hold_amount >= 0", name="ck_deal_disputes_hold"),
        CheckConstraint("resolution_payout_amount >= 0", name="ck_deal_disputes_payout"),
    )

    def __repr__(self) -> str:
        return (
            f"<DealDispute id={self.id} negotiation={self.negotiation_id} "
            f"status={self.status} hold={self.hold_amount}>"
        )
