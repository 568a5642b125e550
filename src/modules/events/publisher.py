"""Negotiation event publishing.

Publishing is fire-and-forget: the dispute engine announces an event only
after its own transaction has committed, and a failure to publish is logged
and dropped. Delivery to listeners happens later through the outbox.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)

NEGOTIATION_AGGREGATE = "negotiation"


@dataclass(frozen=True)
class NegotiationEvent:
    type: str
    negotiation_id: uuid.UUID
    triggered_by: uuid.UUID | None
    payload: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventPublisher(Protocol):
    async def publish(self, event: NegotiationEvent) -> None: ...


class PremiumConversionRecorder(Protocol):
    """Downstream hook for premium-tier deals settled through a dispute."""

    async def record_dispute_resolution(
        self,
        negotiation_id: uuid.UUID,
        dispute_id: uuid.UUID,
        premium_tier: str,
    ) -> None: ...


class OutboxEventPublisher:
    """Writes events to the outbox in a session of its own.

    A dedicated session keeps the publish outside the caller's transaction:
    nothing here can roll back a committed dispute change.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def publish(self, event: NegotiationEvent) -> None:
        try:
            async with self.session_factory() as session:
                outbox = OutboxService(session)
                await outbox.publish_event(
                    event_type=event.type,
                    aggregate_type=NEGOTIATION_AGGREGATE,
                    aggregate_id=str(event.negotiation_id),
                    payload=event.payload,
                    triggered_by=str(event.triggered_by) if event.triggered_by else None,
                    occurred_at=event.occurred_at,
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to publish %s for negotiation %s", event.type, event.negotiation_id
            )
            return

        logger.debug("Published %s for negotiation %s", event.type, event.negotiation_id)


class OutboxPremiumConversionRecorder:
    """Records premium conversions as PREMIUM_NEGOTIATION_COMPLETED events."""

    event_type = "PREMIUM_NEGOTIATION_COMPLETED"

    def __init__(self, publisher: EventPublisher) -> None:
        self.publisher = publisher

    async def record_dispute_resolution(
        self,
        negotiation_id: uuid.UUID,
        dispute_id: uuid.UUID,
        premium_tier: str,
    ) -> None:
        await self.publisher.publish(
            NegotiationEvent(
                type=self.event_type,
                negotiation_id=negotiation_id,
                triggered_by=None,
                payload={
                    "dispute_id": str(dispute_id),
                    "premium_tier": premium_tier,
                    "source": "dispute_resolution",
                },
            )
        )
