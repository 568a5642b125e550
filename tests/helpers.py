"""Test doubles and seed helpers shared across the dispute tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.enums import EscrowStatus, NegotiationStatus, UserRole
from src.models.escrow_account import EscrowAccount
from src.models.negotiation import Negotiation
from src.models.user import User
from src.modules.events.publisher import NegotiationEvent


class RecordingPublisher:
    """Keeps every published event in memory."""

    def __init__(self) -> None:
        self.events: list[NegotiationEvent] = []

    async def publish(self, event: NegotiationEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]


class FailingPublisher:
    """Fails on every publish, like an unreachable outbox."""

    def __init__(self) -> None:
        self.attempts = 0

    async def publish(self, event: NegotiationEvent) -> None:
        self.attempts += 1
        raise RuntimeError("outbox unavailable")


class RecordingPremiumRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[uuid.UUID, uuid.UUID, str]] = []

    async def record_dispute_resolution(self, negotiation_id, dispute_id, premium_tier) -> None:
        self.calls.append((negotiation_id, dispute_id, premium_tier))


@dataclass
class Deal:
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    admin_id: uuid.UUID
    operator_id: uuid.UUID
    negotiation_id: uuid.UUID
    escrow_account_id: uuid.UUID | None


async def seed_deal(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    with_escrow: bool = True,
    negotiation_status: NegotiationStatus = NegotiationStatus.ESCROW_FUNDED,
    premium_tier: str | None = None,
) -> Deal:
    """Insert buyer, seller, two admins, a negotiation and a FUNDED escrow."""
    tag = uuid.uuid4().hex[:8]
    buyer = User(email=f"buyer-{tag}@example.com", name="Berta Buyer", role=UserRole.USER)
    seller = User(email=f"seller-{tag}@example.com", name="Sam Seller", role=UserRole.USER)
    admin = User(email=f"admin-{tag}@example.com", name="Ada Admin", role=UserRole.ADMIN)
    operator = User(email=f"ops-{tag}@example.com", name="Otto Operator", role=UserRole.ADMIN)

    async with session_factory() as db:
        db.add_all([buyer, seller, admin, operator])
        await db.flush()

        negotiation = Negotiation(
            buyer_id=buyer.id,
            seller_id=seller.id,
            listing_title="Baled PET flakes, 20t",
            status=negotiation_status,
            premium_tier=premium_tier,
        )
        db.add(negotiation)
        await db.flush()

        escrow_id = None
        if with_escrow:
            escrow = EscrowAccount(
                negotiation_id=negotiation.id,
                status=EscrowStatus.FUNDED,
                currency="EUR",
                expected_amount=Decimal("1000.00"),
                funded_amount=Decimal("1000.00"),
            )
            db.add(escrow)
            await db.flush()
            escrow_id = escrow.id

        await db.commit()

    return Deal(
        buyer_id=buyer.id,
        seller_id=seller.id,
        admin_id=admin.id,
        operator_id=operator.id,
        negotiation_id=negotiation.id,
        escrow_account_id=escrow_id,
    )
