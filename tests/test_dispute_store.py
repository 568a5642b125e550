"""Tests for DisputeStore: unit of work, guarded money updates and the active-dispute index."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from src.exceptions import DuplicateActiveDisputeException, InfrastructureException
from src.models.deal_dispute import DealDispute
from src.models.enums import (
    DealDisputeCategory,
    DealDisputeEventType,
    DealDisputeSeverity,
    DealDisputeStatus,
)
from src.modules.dispute.store import DisputeStore


def _dispute(deal, **overrides) -> DealDispute:
    now = datetime.now(UTC)
    values = {
        "negotiation_id": deal.negotiation_id,
        "raised_by_user_id": deal.buyer_id,
        "status": DealDisputeStatus.OPEN,
        "severity": DealDisputeSeverity.MEDIUM,
        "category": DealDisputeCategory.ESCROW,
        "summary": "Short delivery",
        "hold_amount": Decimal("0"),
        "resolution_payout_amount": Decimal("0"),
        "raised_at": now,
        "sla_due_at": now + timedelta(hours=72),
    }
    values.update(overrides)
    return DealDispute(**values)


async def _add(session_factory, deal, **overrides) -> DealDispute:
    async with session_factory() as session:
        store = DisputeStore(session)
        async with store.unit_of_work():
            return await store.add_dispute(_dispute(deal, **overrides))


class TestActiveDisputeIndex:
    @pytest.mark.asyncio
    async def test_second_active_insert_maps_to_duplicate(self, session_factory, deal):
        await _add(session_factory, deal)

        with pytest.raises(DuplicateActiveDisputeException):
            await _add(session_factory, deal, status=DealDisputeStatus.ESCALATED)

    @pytest.mark.asyncio
    async def test_terminal_disputes_do_not_block(self, session_factory, deal):
        await _add(session_factory, deal, status=DealDisputeStatus.RESOLVED)
        await _add(session_factory, deal, status=DealDisputeStatus.CLOSED)

        active = await _add(session_factory, deal)

        assert active.status == DealDisputeStatus.OPEN

    @pytest.mark.asyncio
    async def test_has_active_dispute(self, session, deal, session_factory):
        store = DisputeStore(session)
        assert not await store.has_active_dispute(deal.negotiation_id)

        await _add(session_factory, deal)

        assert await store.has_active_dispute(deal.negotiation_id)


class TestEvents:
    @pytest.mark.asyncio
    async def test_sequence_increments_per_dispute(self, session, deal, session_factory):
        closed = await _add(session_factory, deal, status=DealDisputeStatus.CLOSED)
        dispute = await _add(session_factory, deal)
        store = DisputeStore(session)

        async with store.unit_of_work():
            first = await store.append_event(dispute.id, DealDisputeEventType.CREATED)
            second = await store.append_event(
                dispute.id, DealDisputeEventType.STATUS_CHANGED, metadata={"to": "UNDER_REVIEW"}
            )
            other = await store.append_event(closed.id, DealDisputeEventType.CREATED)

        assert (first.sequence, second.sequence, other.sequence) == (1, 2, 1)

        async with session_factory() as check:
            events = await DisputeStore(check).list_events(dispute.id)
        assert [e.type for e in events] == [
            DealDisputeEventType.CREATED,
            DealDisputeEventType.STATUS_CHANGED,
        ]


class TestMoneyUpdates:
    @pytest.mark.asyncio
    async def test_increment_and_release_hold(self, session, deal, session_factory):
        dispute = await _add(session_factory, deal)
        store = DisputeStore(session)

        async with store.unit_of_work():
            assert await store.increment_hold(dispute.id, Decimal("90")) == Decimal("90")
            assert await store.increment_hold(dispute.id, Decimal("10.50")) == Decimal("100.50")
            assert await store.release_hold(dispute.id, Decimal("40.50")) == Decimal("60")

        async with session_factory() as check:
            stored = await DisputeStore(check).get_dispute(dispute.id)
        assert stored.hold_amount == Decimal("60")
        assert stored.resolution_payout_amount == Decimal("40.50")

    @pytest.mark.asyncio
    async def test_release_beyond_hold_changes_nothing(self, session, deal, session_factory):
        dispute = await _add(session_factory, deal, hold_amount=Decimal("25"))
        store = DisputeStore(session)

        async with store.unit_of_work():
            assert await store.release_hold(dispute.id, Decimal("25.01")) is None

        async with session_factory() as check:
            stored = await DisputeStore(check).get_dispute(dispute.id)
        assert stored.hold_amount == Decimal("25")
        assert stored.resolution_payout_amount == Decimal("0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("column", ["hold_amount", "resolution_payout_amount"])
    async def test_negative_balances_violate_check_constraints(
        self, session, deal, session_factory, column
    ):
        dispute = await _add(session_factory, deal, hold_amount=Decimal("5"))
        store = DisputeStore(session)

        with pytest.raises(IntegrityError):
            async with store.unit_of_work():
                await store.update_dispute(dispute.id, **{column: Decimal("-1")})

        async with session_factory() as check:
            stored = await DisputeStore(check).get_dispute(dispute.id)
        assert stored.hold_amount == Decimal("5")


class TestSlaStamp:
    @pytest.mark.asyncio
    async def test_stamps_once(self, session, deal, session_factory):
        past = datetime.now(UTC) - timedelta(hours=1)
        dispute = await _add(session_factory, deal, sla_due_at=past)
        store = DisputeStore(session)
        now = datetime.now(UTC)

        async with store.unit_of_work():
            assert await store.mark_sla_breached(dispute.id, now)
        async with store.unit_of_work():
            assert not await store.mark_sla_breached(dispute.id, now)

    @pytest.mark.asyncio
    async def test_not_overdue_is_not_stamped(self, session, deal, session_factory):
        dispute = await _add(session_factory, deal)
        store = DisputeStore(session)

        async with store.unit_of_work():
            assert not await store.mark_sla_breached(dispute.id, datetime.now(UTC))

    @pytest.mark.asyncio
    async def test_overdue_ids_skip_terminal_disputes(self, session, deal, session_factory):
        past = datetime.now(UTC) - timedelta(hours=2)
        await _add(session_factory, deal, sla_due_at=past, status=DealDisputeStatus.RESOLVED)
        await _add(session_factory, deal, sla_due_at=past, status=DealDisputeStatus.CLOSED)
        overdue = await _add(session_factory, deal, sla_due_at=past)
        store = DisputeStore(session)

        async with store.unit_of_work():
            ids = await store.find_overdue_dispute_ids(datetime.now(UTC))

        assert ids == [overdue.id]


class TestUnitOfWork:
    @pytest.mark.asyncio
    async def test_driver_errors_become_infrastructure_errors(self, session):
        store = DisputeStore(session)
        session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("database is locked"))
        )

        with pytest.raises(InfrastructureException) as exc_info:
            async with store.unit_of_work():
                await store.has_active_dispute(None)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, session, deal, session_factory):
        store = DisputeStore(session)

        with pytest.raises(RuntimeError):
            async with store.unit_of_work():
                await store.add_dispute(_dispute(deal))
                raise RuntimeError("ledger failed")

        async with session_factory() as check:
            assert not await DisputeStore(check).has_active_dispute(deal.negotiation_id)
