"""Tests for EscrowLedger: dispute holds and payouts against escrow accounts."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from src.exceptions import EscrowNotFoundException, InvalidAmountException
from src.models.enums import EscrowStatus, EscrowTransactionType, PayoutDirection
from src.models.escrow_account import EscrowAccount
from src.models.escrow_transaction import EscrowTransaction
from src.modules.escrow.ledger import MAX_AMOUNT, EscrowLedger, normalise_amount


class TestNormaliseAmount:
    def test_rounds_half_up_to_cents(self):
        assert normalise_amount("10.005") == Decimal("10.01")
        assert normalise_amount(Decimal("99.994")) == Decimal("99.99")

    def test_accepts_ints_and_floats(self):
        assert normalise_amount(250) == Decimal("250.00")
        assert normalise_amount(12.5) == Decimal("12.50")

    @pytest.mark.parametrize("value", [0, -1, "0.001", "-25.00"])
    def test_rejects_non_positive(self, value):
        with pytest.raises(InvalidAmountException):
            normalise_amount(value)

    @pytest.mark.parametrize("value", ["abc", "", None, "NaN", "Infinity"])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidAmountException):
            normalise_amount(value)

    def test_accepts_largest_storable_amount(self):
        assert normalise_amount("9999999999999.99") == MAX_AMOUNT

    @pytest.mark.parametrize("value", ["10000000000000", "9999999999999.995", "1e30"])
    def test_rejects_amounts_beyond_column_precision(self, value):
        with pytest.raises(InvalidAmountException, match="must not exceed|not a valid amount"):
            normalise_amount(value)


class TestApplyHold:
    @pytest.mark.asyncio
    async def test_records_hold_and_flags_account_disputed(self, session, session_factory, deal):
        ledger = EscrowLedger(session)

        async with session.begin():
            entry = await ledger.apply_hold(
                deal.escrow_account_id, Decimal("250"), metadata={"reason": "damaged bales"}
            )

        assert entry.type == EscrowTransactionType.DISPUTE_HOLD
        assert entry.amount == Decimal("250.00")
        assert entry.metadata_["reason"] == "damaged bales"

        async with session_factory() as check:
            account = await check.get(EscrowAccount, deal.escrow_account_id)
            assert account.status == EscrowStatus.DISPUTED
            assert account.released_amount == 0
            assert account.refunded_amount == 0

    @pytest.mark.asyncio
    async def test_second_hold_keeps_disputed_and_appends_entry(self, session, session_factory, deal):
        ledger = EscrowLedger(session)

        async with session.begin():
            await ledger.apply_hold(deal.escrow_account_id, Decimal("100"))
        async with session.begin():
            await ledger.apply_hold(deal.escrow_account_id, Decimal("50"))

        async with session_factory() as check:
            ledger_check = EscrowLedger(check)
            entries = await ledger_check.list_transactions(deal.escrow_account_id)
            account = await ledger_check.get_account(deal.escrow_account_id)

        assert [e.amount for e in entries] == [Decimal("100.00"), Decimal("50.00")]
        assert account.status == EscrowStatus.DISPUTED

    @pytest.mark.asyncio
    async def test_unknown_account_raises(self, session):
        ledger = EscrowLedger(session)

        with pytest.raises(EscrowNotFoundException):
            async with session.begin():
                await ledger.apply_hold(uuid.uuid4(), Decimal("10"))

    @pytest.mark.asyncio
    async def test_zero_amount_raises(self, session, deal):
        ledger = EscrowLedger(session)

        with pytest.raises(InvalidAmountException):
            async with session.begin():
                await ledger.apply_hold(deal.escrow_account_id, Decimal("0"))


class TestReleasePayout:
    @pytest.mark.asyncio
    async def test_refund_increments_refunded_amount(self, session, session_factory, deal):
        ledger = EscrowLedger(session)

        async with session.begin():
            await ledger.apply_hold(deal.escrow_account_id, Decimal("300"))
            entry = await ledger.release_payout(
                deal.escrow_account_id, Decimal("120"), PayoutDirection.REFUND_TO_BUYER
            )

        assert entry.type == EscrowTransactionType.DISPUTE_PAYOUT
        assert entry.metadata_["direction"] == "REFUND_TO_BUYER"

        async with session_factory() as check:
            account = await check.get(EscrowAccount, deal.escrow_account_id)
            assert account.refunded_amount == Decimal("120")
            assert account.released_amount == 0
            assert account.status == EscrowStatus.DISPUTED

    @pytest.mark.asyncio
    async def test_release_increments_released_amount_cumulatively(
        self, session, session_factory, deal
    ):
        ledger = EscrowLedger(session)

        async with session.begin():
            await ledger.release_payout(
                deal.escrow_account_id, Decimal("40"), PayoutDirection.RELEASE_TO_SELLER
            )
        async with session.begin():
            await ledger.release_payout(
                deal.escrow_account_id, Decimal("60"), PayoutDirection.RELEASE_TO_SELLER
            )

        async with session_factory() as check:
            account = await check.get(EscrowAccount, deal.escrow_account_id)
            assert account.released_amount == Decimal("100")
            assert account.refunded_amount == 0

    @pytest.mark.asyncio
    async def test_exhausted_hold_settles_account(self, session, session_factory, deal):
        ledger = EscrowLedger(session)

        async with session.begin():
            await ledger.apply_hold(deal.escrow_account_id, Decimal("80"))
            await ledger.release_payout(
                deal.escrow_account_id,
                Decimal("80"),
                PayoutDirection.REFUND_TO_BUYER,
                hold_exhausted=True,
            )

        async with session_factory() as check:
            account = await check.get(EscrowAccount, deal.escrow_account_id)
            assert account.status == EscrowStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_negative_amount_raises(self, session, deal):
        ledger = EscrowLedger(session)

        with pytest.raises(InvalidAmountException):
            async with session.begin():
                await ledger.release_payout(
                    deal.escrow_account_id, Decimal("-5"), PayoutDirection.REFUND_TO_BUYER
                )


class TestLedgerConstraints:
    @pytest.mark.asyncio
    async def test_zero_amount_entry_is_rejected_by_the_database(self, session, deal):
        session.add(
            EscrowTransaction(
                escrow_account_id=deal.escrow_account_id,
                type=EscrowTransactionType.DISPUTE_HOLD,
                amount=Decimal("0"),
            )
        )

        with pytest.raises(IntegrityError):
            await session.flush()

    @pytest.mark.asyncio
    async def test_negative_released_total_is_rejected_by_the_database(self, session, deal):
        with pytest.raises(IntegrityError):
            await session.execute(
                update(EscrowAccount)
                .where(EscrowAccount.id == deal.escrow_account_id)
                .values(released_amount=Decimal("-1"))
            )
