"""OutboxService: async service for recording and draining outbox events."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


class OutboxService:
    """Manages the event outbox lifecycle (record, fetch, mark)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        triggered_by: str | None = None,
        occurred_at: datetime | None = None,
    ) -> EventOutbox:
        """Create a new event in the outbox with PENDING status."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            triggered_by=triggered_by,
            payload=payload,
            status=EventStatus.PENDING,
            occurred_at=occurred_at or datetime.now(UTC),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Get pending events oldest first, limited to batch_size."""
        statement = (
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get_events_for_aggregate(
        self, aggregate_type: str, aggregate_id: str
    ) -> list[EventOutbox]:
        statement = (
            select(EventOutbox)
            .where(
                EventOutbox.aggregate_type == aggregate_type,
                EventOutbox.aggregate_id == aggregate_id,
            )
            .order_by(EventOutbox.created_at.asc())
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def mark_processing(self, event_id: uuid.UUID) -> None:
        await self._set(event_id, status=EventStatus.PROCESSING)

    async def mark_completed(self, event_id: uuid.UUID) -> None:
        await self._set(
            event_id,
            status=EventStatus.COMPLETED,
            processed_at=datetime.now(UTC),
        )

    async def mark_failed(self, event_id: uuid.UUID, error: str) -> EventStatus:
        """Count a failed delivery attempt and return the resulting status.

        The event returns to PENDING for another attempt until retry_count
        reaches max_retries, after which it stays FAILED.
        """
        result = await self.session.execute(
            select(EventOutbox.retry_count, EventOutbox.max_retries).where(
                EventOutbox.id == event_id
            )
        )
        retry_count, max_retries = result.one()

        attempts = retry_count + 1
        new_status = EventStatus.FAILED if attempts >= max_retries else EventStatus.PENDING
        await self._set(
            event_id,
            retry_count=attempts,
            last_error=error,
            status=new_status,
        )
        return new_status

    async def _set(self, event_id: uuid.UUID, **values) -> None:
        await self.session.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
