"""DisputeQueueService: read-only operator triage queue for deal disputes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.config import settings
from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_event import DealDisputeEvent
from src.models.enums import DealDisputeCategory, DealDisputeSeverity, DealDisputeStatus
from src.models.negotiation import Negotiation
from src.modules.dispute.constants import ACTIVE_DISPUTE_STATUSES
from src.modules.dispute.schemas import (
    AssigneeSummary,
    DisputeEventResponse,
    DisputeEvidenceResponse,
    DisputeQueueItem,
    RaisedBySummary,
)


@dataclass
class DisputeQueueFilter:
    """Queue filter; ``statuses=None`` means the active statuses only."""

    statuses: list[DealDisputeStatus] | None = None
    severity: DealDisputeSeverity | None = None
    category: DealDisputeCategory | None = None
    assigned_to_user_id: uuid.UUID | None = None
    negotiation_id: uuid.UUID | None = None
    limit: int | None = None
    offset: int = 0


class DisputeQueueService:
    """Assembles disputes into queue items. Performs no writes."""

    def __init__(self, session: AsyncSession, max_limit: int | None = None) -> None:
        self.session = session
        self.max_limit = max_limit or settings.dispute_queue_max_limit

    def page_size(self, requested: int | None) -> int:
        if requested is None or requested <= 0:
            return settings.dispute_queue_default_limit
        return min(requested, self.max_limit)

    async def get_deal_dispute_queue(
        self, filter: DisputeQueueFilter | None = None
    ) -> list[DisputeQueueItem]:
        """Disputes ordered by SLA due date (none last), then by raise time."""
        filter = filter or DisputeQueueFilter()
        statuses = filter.statuses or sorted(ACTIVE_DISPUTE_STATUSES, key=lambda s: s.value)

        query = (
            select(DealDispute)
            .options(
                selectinload(DealDispute.negotiation).selectinload(Negotiation.escrow_account),
                selectinload(DealDispute.assigned_to),
                selectinload(DealDispute.raised_by),
                selectinload(DealDispute.evidence),
            )
            .where(DealDispute.status.in_(list(statuses)))
        )

        if filter.severity is not None:
            query = query.where(DealDispute.severity == filter.severity)
        if filter.category is not None:
            query = query.where(DealDispute.category == filter.category)
        if filter.assigned_to_user_id is not None:
            query = query.where(DealDispute.assigned_to_user_id == filter.assigned_to_user_id)
        if filter.negotiation_id is not None:
            query = query.where(DealDispute.negotiation_id == filter.negotiation_id)

        query = (
            query.order_by(
                DealDispute.sla_due_at.is_(None),
                DealDispute.sla_due_at.asc(),
                DealDispute.raised_at.asc(),
                DealDispute.id,
            )
            .offset(max(filter.offset, 0))
            .limit(self.page_size(filter.limit))
        )

        result = await self.session.execute(query)
        disputes = list(result.scalars().all())
        latest = await self._latest_events([d.id for d in disputes])

        return [self._to_item(dispute, latest.get(dispute.id)) for dispute in disputes]

    async def _latest_events(
        self, dispute_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, DealDisputeEvent]:
        if not dispute_ids:
            return {}

        last_sequence = (
            select(
                DealDisputeEvent.dispute_id,
                func.max(DealDisputeEvent.sequence).label("sequence"),
            )
            .where(DealDisputeEvent.dispute_id.in_(dispute_ids))
            .group_by(DealDisputeEvent.dispute_id)
            .subquery()
        )
        result = await self.session.execute(
            select(DealDisputeEvent).join(
                last_sequence,
                (DealDisputeEvent.dispute_id == last_sequence.c.dispute_id)
                & (DealDisputeEvent.sequence == last_sequence.c.sequence),
            )
        )
        return {event.dispute_id: event for event in result.scalars().all()}

    @staticmethod
    def _to_item(dispute: DealDispute, latest_event: DealDisputeEvent | None) -> DisputeQueueItem:
        negotiation = dispute.negotiation
        escrow = negotiation.escrow_account

        return DisputeQueueItem(
            id=dispute.id,
            negotiation_id=dispute.negotiation_id,
            negotiation_status=negotiation.status,
            status=dispute.status,
            severity=dispute.severity,
            category=dispute.category,
            summary=dispute.summary,
            description=dispute.description,
            requested_outcome=dispute.requested_outcome,
            hold_amount=dispute.hold_amount,
            counter_proposal_amount=dispute.counter_proposal_amount,
            resolution_payout_amount=dispute.resolution_payout_amount,
            escrow_status=escrow.status if escrow else None,
            escrow_currency=escrow.currency if escrow else None,
            raised_at=dispute.raised_at,
            sla_due_at=dispute.sla_due_at,
            sla_breached_at=dispute.sla_breached_at,
            assigned_to=(
                AssigneeSummary.model_validate(dispute.assigned_to)
                if dispute.assigned_to
                else None
            ),
            raised_by=RaisedBySummary.model_validate(dispute.raised_by),
            evidence=[DisputeEvidenceResponse.model_validate(e) for e in dispute.evidence],
            latest_event=(
                DisputeEventResponse.model_validate(latest_event) if latest_event else None
            ),
        )
