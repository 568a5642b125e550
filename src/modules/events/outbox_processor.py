"""OutboxProcessor: drains pending outbox events to registered listeners."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.enums import EventStatus
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)


class OutboxProcessor:
    """Delivers one batch of PENDING events per call.

    Each event is delivered and marked in its own transaction, so a failing
    listener only affects that event. Pending rows are fetched with
    ``FOR UPDATE SKIP LOCKED`` on PostgreSQL, which lets several workers run
    side by side.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: EventHandlerRegistry,
    ) -> None:
        self.session_factory = session_factory
        self.registry = registry

    async def process_batch(self, batch_size: int = 50) -> dict:
        """Returns ``{"processed": n, "failed": n}`` for the batch."""
        processed_count = 0
        failed_count = 0

        async with self.session_factory() as session:
            outbox = OutboxService(session)
            pending = await outbox.get_pending_events(batch_size=batch_size)
            batch = [(event.id, event.event_type, dict(event.payload or {})) for event in pending]
            await session.commit()

        for event_id, event_type, payload in batch:
            async with self.session_factory() as session:
                outbox = OutboxService(session)
                await outbox.mark_processing(event_id)

                results = await self.registry.dispatch(event_type, payload)
                errors = [r for r in results if r["status"] == "error"]

                if errors:
                    message = "; ".join(f"{r['handler']}: {r['error']}" for r in errors)
                    status = await outbox.mark_failed(event_id, message)
                    failed_count += 1
                    if status == EventStatus.FAILED:
                        logger.error("Event %s (%s) gave up after retries", event_id, event_type)
                else:
                    await outbox.mark_completed(event_id)
                    processed_count += 1

                await session.commit()

        if batch:
            logger.info(
                "Outbox batch done: %d processed, %d failed", processed_count, failed_count
            )
        return {"processed": processed_count, "failed": failed_count}
