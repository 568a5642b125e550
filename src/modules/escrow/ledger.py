"""EscrowLedger: hold and payout bookkeeping against escrow accounts.

The ledger models escrow abstractly: it records append-only
``EscrowTransaction`` rows and keeps the account's status and cumulative
released/refunded totals in step. No money moves on a payment rail here.

All writes go through the caller's session and never commit; the dispute
engine owns the surrounding transaction.
"""

from __future__ import annotations

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import EscrowNotFoundException, InvalidAmountException
from src.models.enums import EscrowStatus, EscrowTransactionType, PayoutDirection
from src.models.escrow_account import EscrowAccount
from src.models.escrow_transaction import EscrowTransaction

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
# Largest value a NUMERIC(15, 2) column holds
MAX_AMOUNT = Decimal("9999999999999.99")


def normalise_amount(amount: Decimal | int | float | str) -> Decimal:
    """Coerce a monetary argument to a positive Decimal rounded to cents.

    Raises InvalidAmountException for anything non-numeric, non-finite, <= 0
    or too large for the money columns.
    """
    try:
        value = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidAmountException(f"Amount '{amount}' is not a valid amount") from exc

    if not value.is_finite():
        raise InvalidAmountException("Amount must be a finite number")
    if value <= 0:
        raise InvalidAmountException("Amount must be greater than 0")
    if value > MAX_AMOUNT:
        raise InvalidAmountException(f"Amount must not exceed {MAX_AMOUNT}")
    return value


class EscrowLedger:
    """Applies dispute holds and payouts to an escrow account."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_account(self, escrow_account_id: uuid.UUID) -> EscrowAccount:
        result = await self.session.execute(
            select(EscrowAccount)
            .where(EscrowAccount.id == escrow_account_id)
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise EscrowNotFoundException(f"Escrow account {escrow_account_id} not found")
        return account

    async def apply_hold(
        self,
        escrow_account_id: uuid.UUID,
        amount: Decimal,
        metadata: dict | None = None,
    ) -> EscrowTransaction:
        """Record a DISPUTE_HOLD entry and flag the account as DISPUTED.

        Flagging is idempotent; the dispute's own hold balance is maintained
        by the caller.
        """
        amount = normalise_amount(amount)
        account = await self.get_account(escrow_account_id)

        entry = EscrowTransaction(
            escrow_account_id=account.id,
            type=EscrowTransactionType.DISPUTE_HOLD,
            amount=amount,
            metadata_=metadata or {},
        )
        self.session.add(entry)

        if account.status != EscrowStatus.DISPUTED:
            previous = account.status
            account.status = EscrowStatus.DISPUTED
            logger.info(
                "Escrow account %s moved %s -> DISPUTED", account.id, previous.value
            )

        await self.session.flush()
        return entry

    async def release_payout(
        self,
        escrow_account_id: uuid.UUID,
        amount: Decimal,
        direction: PayoutDirection,
        metadata: dict | None = None,
        *,
        hold_exhausted: bool = False,
    ) -> EscrowTransaction:
        """Record a DISPUTE_PAYOUT entry and bump the matching cumulative total.

        RELEASE_TO_SELLER increments ``released_amount``; REFUND_TO_BUYER
        increments ``refunded_amount``. When ``hold_exhausted`` is set the
        account settles to RELEASED or REFUNDED accordingly.
        """
        amount = normalise_amount(amount)
        account = await self.get_account(escrow_account_id)

        entry = EscrowTransaction(
            escrow_account_id=account.id,
            type=EscrowTransactionType.DISPUTE_PAYOUT,
            amount=amount,
            metadata_={**(metadata or {}), "direction": direction.value},
        )
        self.session.add(entry)

        if direction == PayoutDirection.RELEASE_TO_SELLER:
            values = {"released_amount": EscrowAccount.released_amount + amount}
            settled_status = EscrowStatus.RELEASED
        else:
            values = {"refunded_amount": EscrowAccount.refunded_amount + amount}
            settled_status = EscrowStatus.REFUNDED

        if hold_exhausted:
            values["status"] = settled_status

        await self.session.execute(
            update(EscrowAccount)
            .where(EscrowAccount.id == account.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()

        logger.info(
            "Escrow account %s paid out %s (%s)", account.id, amount, direction.value
        )
        return entry

    async def list_transactions(self, escrow_account_id: uuid.UUID) -> list[EscrowTransaction]:
        result = await self.session.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.escrow_account_id == escrow_account_id)
            .order_by(EscrowTransaction.occurred_at.asc())
        )
        return list(result.scalars().all())
