"""Negotiation model: the buyer/seller deal a dispute is raised against.

The offer lifecycle is owned by the marketplace; this mapping only carries
what the dispute engine reads.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import NegotiationStatus

if TYPE_CHECKING:
    from src.models.deal_dispute import DealDispute
    from src.models.escrow_account import EscrowAccount
    from src.models.user import User


class Negotiation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "negotiations"

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    listing_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    listing_title: Mapped[str | None] = mapped_column(String(500))
    status: Mapped[NegotiationStatus] = mapped_column(
        nullable=False, server_default="INITIATED"
    )
    premium_tier: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    buyer: Mapped[User] = relationship("User", foreign_keys=[buyer_id], lazy="noload")
    seller: Mapped[User] = relationship("User", foreign_keys=[seller_id], lazy="noload")
    escrow_account: Mapped[EscrowAccount | None] = relationship(
        "EscrowAccount", back_populates="negotiation", uselist=False, lazy="noload"
    )
    disputes: Mapped[list[DealDispute]] = relationship(
        "DealDispute", back_populates="negotiation", lazy="noload"
    )

    __table_args__ = (
        Index("ix_negotiations_buyer_id", "buyer_id"),
        Index("ix_negotiations_seller_id", "seller_id"),
        Index("ix_negotiations_status", "status"),
    )

    def is_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.buyer_id, self.seller_id)
