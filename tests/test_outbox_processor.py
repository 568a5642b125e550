"""Tests for the outbox drain: handler registry, processor and publisher."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.events.outbox_processor import OutboxProcessor
from src.modules.events.outbox_service import OutboxService
from src.modules.events.publisher import (
    NegotiationEvent,
    OutboxEventPublisher,
    OutboxPremiumConversionRecorder,
)
from tests.helpers import RecordingPublisher


async def _seed_event(session_factory, event_type="DEAL_DISPUTE_RAISED", payload=None):
    async with session_factory() as session:
        event = await OutboxService(session).publish_event(
            event_type=event_type,
            aggregate_type="negotiation",
            aggregate_id=str(uuid.uuid4()),
            payload=payload or {"dispute_id": "d-1"},
        )
        await session.commit()
        return event.id


async def _outbox_row(session_factory, event_id) -> EventOutbox:
    async with session_factory() as session:
        return await session.get(EventOutbox, event_id)


class TestEventHandlerRegistry:
    @pytest.mark.asyncio
    async def test_dispatches_sync_async_and_wildcard_handlers(self):
        registry = EventHandlerRegistry()
        seen = []

        def sync_handler(event_type, payload):
            seen.append(("sync", event_type, payload))

        async def async_handler(event_type, payload):
            seen.append(("async", event_type, payload))

        def audit(event_type, payload):
            seen.append(("audit", event_type, payload))

        registry.register("DEAL_DISPUTE_RAISED", sync_handler)
        registry.register("DEAL_DISPUTE_RAISED", async_handler)
        registry.register("*", audit)

        results = await registry.dispatch("DEAL_DISPUTE_RAISED", {"dispute_id": "d-1"})

        assert results == [
            {"handler": "sync_handler", "status": "ok"},
            {"handler": "async_handler", "status": "ok"},
            {"handler": "audit", "status": "ok"},
        ]
        assert [name for name, _, _ in seen] == ["sync", "async", "audit"]
        assert seen[0][2] == {"dispute_id": "d-1"}

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        registry = EventHandlerRegistry()

        def broken(event_type, payload):
            raise ValueError("listener down")

        healthy = AsyncMock(__name__="healthy")
        registry.register("DEAL_DISPUTE_ASSIGNED", broken)
        registry.register("DEAL_DISPUTE_ASSIGNED", healthy)

        results = await registry.dispatch("DEAL_DISPUTE_ASSIGNED", {})

        assert results[0] == {"handler": "broken", "status": "error", "error": "listener down"}
        assert results[1]["status"] == "ok"
        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_handlers_means_no_results(self):
        assert await EventHandlerRegistry().dispatch("UNKNOWN", {}) == []


class TestOutboxProcessor:
    @pytest.mark.asyncio
    async def test_delivers_and_completes_pending_events(self, session_factory):
        event_id = await _seed_event(session_factory, payload={"dispute_id": "d-42"})
        registry = EventHandlerRegistry()
        handler = AsyncMock(__name__="notify")
        registry.register("DEAL_DISPUTE_RAISED", handler)

        stats = await OutboxProcessor(session_factory, registry).process_batch()

        assert stats == {"processed": 1, "failed": 0}
        handler.assert_awaited_once_with("DEAL_DISPUTE_RAISED", {"dispute_id": "d-42"})
        row = await _outbox_row(session_factory, event_id)
        assert row.status == EventStatus.COMPLETED
        assert row.processed_at is not None

    @pytest.mark.asyncio
    async def test_failing_handler_returns_event_to_pending(self, session_factory):
        event_id = await _seed_event(session_factory)
        registry = EventHandlerRegistry()
        registry.register("DEAL_DISPUTE_RAISED", AsyncMock(side_effect=RuntimeError("smtp down")))

        stats = await OutboxProcessor(session_factory, registry).process_batch()

        assert stats == {"processed": 0, "failed": 1}
        row = await _outbox_row(session_factory, event_id)
        assert row.status == EventStatus.PENDING
        assert row.retry_count == 1
        assert "smtp down" in row.last_error

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, session_factory):
        event_id = await _seed_event(session_factory)
        registry = EventHandlerRegistry()
        registry.register("DEAL_DISPUTE_RAISED", AsyncMock(side_effect=RuntimeError("down")))
        processor = OutboxProcessor(session_factory, registry)

        for _ in range(3):
            await processor.process_batch()
        stats = await processor.process_batch()

        assert stats == {"processed": 0, "failed": 0}
        row = await _outbox_row(session_factory, event_id)
        assert row.status == EventStatus.FAILED
        assert row.retry_count == 3

    @pytest.mark.asyncio
    async def test_empty_outbox(self, session_factory):
        stats = await OutboxProcessor(session_factory, EventHandlerRegistry()).process_batch()

        assert stats == {"processed": 0, "failed": 0}


class TestOutboxEventPublisher:
    @pytest.mark.asyncio
    async def test_writes_pending_outbox_row(self, session_factory):
        negotiation_id = uuid.uuid4()
        actor = uuid.uuid4()

        await OutboxEventPublisher(session_factory).publish(
            NegotiationEvent(
                type="DEAL_DISPUTE_ESCROW_HOLD",
                negotiation_id=negotiation_id,
                triggered_by=actor,
                payload={"amount": "250.00"},
            )
        )

        async with session_factory() as session:
            result = await session.execute(
                select(EventOutbox).where(EventOutbox.aggregate_id == str(negotiation_id))
            )
            row = result.scalar_one()
        assert row.event_type == "DEAL_DISPUTE_ESCROW_HOLD"
        assert row.aggregate_type == "negotiation"
        assert row.triggered_by == str(actor)
        assert row.payload == {"amount": "250.00"}
        assert row.status == EventStatus.PENDING

    @pytest.mark.asyncio
    async def test_swallows_store_failures(self):
        factory = MagicMock(side_effect=RuntimeError("pool exhausted"))

        await OutboxEventPublisher(factory).publish(
            NegotiationEvent(type="DEAL_DISPUTE_RAISED", negotiation_id=uuid.uuid4(), triggered_by=None)
        )

        factory.assert_called_once()


class TestPremiumConversionRecorder:
    @pytest.mark.asyncio
    async def test_publishes_premium_completion(self):
        publisher = RecordingPublisher()
        negotiation_id, dispute_id = uuid.uuid4(), uuid.uuid4()

        await OutboxPremiumConversionRecorder(publisher).record_dispute_resolution(
            negotiation_id, dispute_id, "gold"
        )

        assert publisher.types() == ["PREMIUM_NEGOTIATION_COMPLETED"]
        event = publisher.events[0]
        assert event.negotiation_id == negotiation_id
        assert event.payload == {
            "dispute_id": str(dispute_id),
            "premium_tier": "gold",
            "source": "dispute_resolution",
        }
