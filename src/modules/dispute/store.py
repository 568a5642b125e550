"""DisputeStore: persistence contract for deal disputes.

Groups dispute updates, audit events, evidence rows and the ledger writes
issued through the same session into one unit of work. Monetary columns are
only ever changed with relative ``col = col + :delta`` updates issued inside
that unit of work, never written back from application memory.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.exceptions import DuplicateActiveDisputeException, InfrastructureException
from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_event import DealDisputeEvent
from src.models.deal_dispute_evidence import DealDisputeEvidence
from src.models.enums import DealDisputeEventType, DealDisputeStatus
from src.models.negotiation import Negotiation
from src.models.user import User
from src.modules.dispute.constants import ACTIVE_DISPUTE_STATUSES, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

_ACTIVE_INDEX_MARKERS = (
    "uq_deal_disputes_active_negotiation",
    "deal_disputes.negotiation_id",
)


class DisputeStore:
    """Session-backed store used by the dispute lifecycle engine."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[DisputeStore]:
        """Run the enclosed writes atomically.

        Opens a transaction on the session, or a SAVEPOINT when the caller
        already holds one, and commits or rolls back as a whole. Driver and
        connection failures surface as InfrastructureException.
        """
        try:
            if self.session.in_transaction():
                async with self.session.begin_nested():
                    yield self
            else:
                async with self.session.begin():
                    yield self
        except IntegrityError:
            raise
        except DBAPIError as exc:
            logger.warning("Dispute store transaction failed: %s", exc)
            raise InfrastructureException(
                "Dispute store is unavailable; the operation was rolled back and may be retried"
            ) from exc

    def detach(self, *rows) -> None:
        """Expunge rows handed back to callers.

        A later rollback on this session expires everything it tracks; detached
        rows keep the values they were loaded with.
        """
        for row in rows:
            if row in self.session:
                self.session.expunge(row)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_negotiation(self, negotiation_id: uuid.UUID) -> Negotiation | None:
        result = await self.session.execute(
            select(Negotiation)
            .options(selectinload(Negotiation.escrow_account))
            .where(Negotiation.id == negotiation_id)
        )
        return result.scalar_one_or_none()

    async def user_exists(self, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None

    async def get_dispute(
        self, dispute_id: uuid.UUID, *, for_update: bool = False
    ) -> DealDispute | None:
        """Load a dispute, always re-reading its row from the database.

        ``for_update`` takes a row lock so concurrent operations on the same
        dispute serialize behind each other.
        """
        query = (
            select(DealDispute)
            .where(DealDispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def has_active_dispute(self, negotiation_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(DealDispute.id)
            .where(
                DealDispute.negotiation_id == negotiation_id,
                DealDispute.status.in_(list(ACTIVE_DISPUTE_STATUSES)),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_events(self, dispute_id: uuid.UUID) -> list[DealDisputeEvent]:
        result = await self.session.execute(
            select(DealDisputeEvent)
            .where(DealDisputeEvent.dispute_id == dispute_id)
            .order_by(DealDisputeEvent.sequence.asc())
        )
        return list(result.scalars().all())

    async def list_evidence(self, dispute_id: uuid.UUID) -> list[DealDisputeEvidence]:
        result = await self.session.execute(
            select(DealDisputeEvidence)
            .where(DealDisputeEvidence.dispute_id == dispute_id)
            .order_by(DealDisputeEvidence.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_overdue_dispute_ids(
        self, now: datetime, limit: int | None = None
    ) -> list[uuid.UUID]:
        query = (
            select(DealDispute.id)
            .where(
                DealDispute.sla_due_at.isnot(None),
                DealDispute.sla_due_at < now,
                DealDispute.sla_breached_at.is_(None),
                DealDispute.status.notin_(list(TERMINAL_STATUSES)),
            )
            .order_by(DealDispute.sla_due_at.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_dispute(self, dispute: DealDispute) -> DealDispute:
        """Insert a dispute; the active-dispute index rejects duplicates."""
        self.session.add(dispute)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if any(marker in str(exc.orig) for marker in _ACTIVE_INDEX_MARKERS):
                raise DuplicateActiveDisputeException(
                    "An active dispute already exists for this negotiation"
                ) from exc
            raise
        return dispute

    async def add_evidence(self, items: list[DealDisputeEvidence]) -> None:
        self.session.add_all(items)
        await self.session.flush()

    async def append_event(
        self,
        dispute_id: uuid.UUID,
        event_type: DealDisputeEventType,
        *,
        actor_user_id: uuid.UUID | None = None,
        status: DealDisputeStatus | None = None,
        message: str | None = None,
        metadata: dict | None = None,
        created_at: datetime | None = None,
    ) -> DealDisputeEvent:
        """Append the next event to a dispute's audit trail."""
        result = await self.session.execute(
            select(func.coalesce(func.max(DealDisputeEvent.sequence), 0)).where(
                DealDisputeEvent.dispute_id == dispute_id
            )
        )
        sequence = int(result.scalar_one()) + 1

        event = DealDisputeEvent(
            dispute_id=dispute_id,
            sequence=sequence,
            actor_user_id=actor_user_id,
            type=event_type,
            status=status,
            message=message,
            metadata_=metadata,
        )
        if created_at is not None:
            event.created_at = created_at
        self.session.add(event)
        await self.session.flush()
        return event

    async def update_dispute(self, dispute_id: uuid.UUID, **values) -> None:
        """Set absolute column values (status, timestamps, assignment)."""
        await self.session.execute(
            update(DealDispute)
            .where(DealDispute.id == dispute_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def increment_hold(self, dispute_id: uuid.UUID, amount: Decimal) -> Decimal:
        """Add ``amount`` to the stored hold and return the new balance."""
        await self.session.execute(
            update(DealDispute)
            .where(DealDispute.id == dispute_id)
            .values(hold_amount=DealDispute.hold_amount + amount)
            .execution_options(synchronize_session=False)
        )
        return await self._read_hold(dispute_id)

    async def release_hold(self, dispute_id: uuid.UUID, amount: Decimal) -> Decimal | None:
        """Move ``amount`` from the hold into the cumulative payout total.

        The update only matches while the stored hold still covers the amount;
        returns the remaining hold, or None when the balance was insufficient.
        """
        result = await self.session.execute(
            update(DealDispute)
            .where(DealDispute.id == dispute_id, DealDispute.hold_amount >= amount)
            .values(
                hold_amount=DealDispute.hold_amount - amount,
                resolution_payout_amount=DealDispute.resolution_payout_amount + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self._read_hold(dispute_id)

    async def mark_sla_breached(
        self,
        dispute_id: uuid.UUID,
        now: datetime,
        escalate_to: DealDisputeStatus | None = None,
    ) -> bool:
        """Stamp ``sla_breached_at`` once; False when already stamped or not overdue."""
        values: dict = {"sla_breached_at": now}
        if escalate_to is not None:
            values["status"] = escalate_to
            values["escalated_at"] = func.coalesce(DealDispute.escalated_at, now)

        result = await self.session.execute(
            update(DealDispute)
            .where(
                DealDispute.id == dispute_id,
                DealDispute.sla_breached_at.is_(None),
                DealDispute.sla_due_at.isnot(None),
                DealDispute.sla_due_at < now,
                DealDispute.status.notin_(list(TERMINAL_STATUSES)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _read_hold(self, dispute_id: uuid.UUID) -> Decimal:
        result = await self.session.execute(
            select(DealDispute.hold_amount).where(DealDispute.id == dispute_id)
        )
        return result.scalar_one()
