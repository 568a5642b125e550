"""Deal dispute lifecycle engine: raise, state machine, escrow settlement, SLA."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.exceptions import (
    AssigneeNotFoundException,
    ConflictException,
    DisputeNotFoundException,
    DuplicateActiveDisputeException,
    EscrowNotFoundException,
    ForbiddenException,
    InsufficientHoldBalanceException,
    InvalidTransitionException,
    NegotiationNotFoundException,
    ValidationException,
)
from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_evidence import DealDisputeEvidence
from src.models.enums import (
    DealDisputeCategory,
    DealDisputeEventType,
    DealDisputeEvidenceType,
    DealDisputeSeverity,
    DealDisputeStatus,
    NegotiationStatus,
    PayoutDirection,
)
from src.models.escrow_account import EscrowAccount
from src.models.negotiation import Negotiation
from src.modules.dispute.constants import (
    DEFAULT_CURRENCY,
    EVENT_DEAL_DISPUTE_ASSIGNED,
    EVENT_DEAL_DISPUTE_ESCROW_COUNTER,
    EVENT_DEAL_DISPUTE_ESCROW_HOLD,
    EVENT_DEAL_DISPUTE_ESCROW_PAYOUT,
    EVENT_DEAL_DISPUTE_EVIDENCE_ATTACHED,
    EVENT_DEAL_DISPUTE_RAISED,
    EVENT_DEAL_DISPUTE_SLA_BREACHED,
    EVENT_DEAL_DISPUTE_STATUS_CHANGED,
    TRANSITION_EVENT_TYPES,
    VALID_DISPUTE_TRANSITIONS,
    default_sla_windows,
)
from src.modules.dispute.store import DisputeStore
from src.modules.escrow.ledger import EscrowLedger, normalise_amount
from src.modules.events.publisher import (
    EventPublisher,
    NegotiationEvent,
    OutboxEventPublisher,
    OutboxPremiumConversionRecorder,
    PremiumConversionRecorder,
)

logger = logging.getLogger(__name__)

# Statuses the SLA sweep moves to ESCALATED when it records a breach
AUTO_ESCALATE_FROM = frozenset({
    DealDisputeStatus.OPEN,
    DealDisputeStatus.UNDER_REVIEW,
    DealDisputeStatus.AWAITING_PARTIES,
})


@dataclass(frozen=True)
class EvidenceInput:
    url: str
    type: DealDisputeEvidenceType = DealDisputeEvidenceType.LINK
    label: str | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _sanitize_evidence(
    attachments: list[EvidenceInput] | None, limit: int
) -> list[EvidenceInput]:
    """Trim urls and labels, drop blank urls, keep at most ``limit`` items."""
    cleaned: list[EvidenceInput] = []
    for item in attachments or []:
        url = _clean(item.url)
        if not url:
            continue
        cleaned.append(
            EvidenceInput(
                url=url,
                type=item.type or DealDisputeEvidenceType.LINK,
                label=_clean(item.label),
            )
        )
    return cleaned[:limit]


class DealDisputeService:
    """Runs every dispute mutation as one unit of work, then announces it.

    Preconditions are checked against rows re-read (and locked) inside the
    unit of work. The dispute update, its audit event and any evidence or
    ledger writes commit together or not at all. Event publication happens
    afterwards and never raises.
    """

    def __init__(
        self,
        store: DisputeStore,
        ledger: EscrowLedger,
        publisher: EventPublisher,
        premium_recorder: PremiumConversionRecorder | None = None,
        sla_windows: dict[DealDisputeSeverity, timedelta] | None = None,
        max_attachments: int | None = None,
        auto_escalate: bool | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.publisher = publisher
        self.premium_recorder = premium_recorder
        self.sla_windows = sla_windows or default_sla_windows()
        self.max_attachments = (
            settings.dispute_max_attachments if max_attachments is None else max_attachments
        )
        self.auto_escalate = (
            settings.dispute_sla_auto_escalate if auto_escalate is None else auto_escalate
        )

    @classmethod
    def for_session(
        cls,
        session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        **kwargs,
    ) -> DealDisputeService:
        """Wire the default store, ledger and outbox publisher around a session."""
        publisher = kwargs.pop("publisher", None) or OutboxEventPublisher(session_factory)
        kwargs.setdefault("premium_recorder", OutboxPremiumConversionRecorder(publisher))
        return cls(DisputeStore(session), EscrowLedger(session), publisher, **kwargs)

    # ------------------------------------------------------------------
    # Raising
    # ------------------------------------------------------------------

    async def raise_dispute(
        self,
        negotiation_id: uuid.UUID,
        raised_by_user_id: uuid.UUID,
        summary: str,
        description: str | None = None,
        requested_outcome: str | None = None,
        severity: DealDisputeSeverity = DealDisputeSeverity.MEDIUM,
        category: DealDisputeCategory = DealDisputeCategory.ESCROW,
        attachments: list[EvidenceInput] | None = None,
        *,
        participant_only: bool = False,
    ) -> DealDispute:
        """Open a dispute on a negotiation.

        With ``participant_only`` the raiser must be the negotiation's buyer
        or seller. Only one dispute per negotiation may be active at a time.
        """
        summary = (summary or "").strip()
        if not summary:
            raise ValidationException("Dispute summary is required")
        description = _clean(description)
        requested_outcome = _clean(requested_outcome)
        evidence = _sanitize_evidence(attachments, self.max_attachments)
        now = datetime.now(UTC)

        async with self.store.unit_of_work():
            negotiation = await self.store.get_negotiation(negotiation_id)
            if negotiation is None:
                raise NegotiationNotFoundException(f"Negotiation {negotiation_id} not found")
            if participant_only and not negotiation.is_participant(raised_by_user_id):
                raise ForbiddenException("Only deal participants can raise a dispute")
            if negotiation.status == NegotiationStatus.CANCELLED:
                raise ConflictException("Cannot raise a dispute on a cancelled negotiation")
            if await self.store.has_active_dispute(negotiation_id):
                raise DuplicateActiveDisputeException(
                    "An active dispute already exists for this negotiation"
                )

            dispute = await self.store.add_dispute(
                DealDispute(
                    negotiation_id=negotiation_id,
                    raised_by_user_id=raised_by_user_id,
                    status=DealDisputeStatus.OPEN,
                    severity=severity,
                    category=category,
                    summary=summary,
                    description=description,
                    requested_outcome=requested_outcome,
                    hold_amount=Decimal("0"),
                    resolution_payout_amount=Decimal("0"),
                    raised_at=now,
                    sla_due_at=now + self.sla_windows[severity],
                )
            )

            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.CREATED,
                actor_user_id=raised_by_user_id,
                status=DealDisputeStatus.OPEN,
                message=description,
                metadata={"requested_outcome": requested_outcome},
            )

            if evidence:
                await self._store_evidence(dispute.id, raised_by_user_id, evidence)
        self.store.detach(dispute)

        logger.info(
            "Raised dispute %s on negotiation %s (%s, %d attachments)",
            dispute.id, negotiation_id, severity.value, len(evidence),
        )

        await self._publish(
            EVENT_DEAL_DISPUTE_RAISED,
            negotiation_id,
            raised_by_user_id,
            {
                "dispute_id": str(dispute.id),
                "severity": severity.value,
                "category": category.value,
                "attachments": len(evidence),
                "sla_due_at": dispute.sla_due_at.isoformat() if dispute.sla_due_at else None,
            },
        )
        return dispute

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _validate_transition(
        self, current_status: DealDisputeStatus, target_status: DealDisputeStatus
    ) -> None:
        allowed = VALID_DISPUTE_TRANSITIONS.get(current_status, frozenset())
        if target_status not in allowed:
            raise InvalidTransitionException(
                f"Cannot transition from '{current_status.value}' to '{target_status.value}'",
                details=[{
                    "from": current_status.value,
                    "to": target_status.value,
                    "allowed": sorted(s.value for s in allowed),
                }],
            )

    async def transition_status(
        self,
        dispute_id: uuid.UUID,
        target_status: DealDisputeStatus,
        actor_user_id: uuid.UUID | None,
        note: str | None = None,
    ) -> DealDispute:
        note = _clean(note)
        now = datetime.now(UTC)
        negotiation: Negotiation | None = None

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            previous = dispute.status
            self._validate_transition(previous, target_status)

            values: dict = {"status": target_status}
            if target_status == DealDisputeStatus.UNDER_REVIEW and dispute.acknowledged_at is None:
                values["acknowledged_at"] = now
            if target_status == DealDisputeStatus.ESCALATED and dispute.escalated_at is None:
                values["escalated_at"] = now
            if target_status == DealDisputeStatus.RESOLVED:
                values["resolved_at"] = now
            if target_status == DealDisputeStatus.CLOSED:
                values["closed_at"] = now

            await self.store.update_dispute(dispute.id, **values)
            await self.store.append_event(
                dispute.id,
                TRANSITION_EVENT_TYPES[target_status],
                actor_user_id=actor_user_id,
                status=target_status,
                message=note,
                metadata={"from": previous.value, "to": target_status.value},
            )

            if target_status == DealDisputeStatus.RESOLVED:
                negotiation = await self.store.get_negotiation(dispute.negotiation_id)
            dispute = await self._reload(dispute.id)

        logger.info(
            "Dispute %s moved %s -> %s", dispute_id, previous.value, target_status.value
        )

        await self._publish(
            EVENT_DEAL_DISPUTE_STATUS_CHANGED,
            dispute.negotiation_id,
            actor_user_id,
            {
                "dispute_id": str(dispute.id),
                "from_status": previous.value,
                "status": target_status.value,
                "note": note,
            },
        )

        if negotiation is not None:
            await self._record_premium_conversion(negotiation, dispute)
        return dispute

    async def assign_deal_dispute(
        self,
        dispute_id: uuid.UUID,
        assignee_user_id: uuid.UUID | None,
        actor_user_id: uuid.UUID | None,
    ) -> DealDispute:
        """Assign an operator, or clear the assignment with ``None``."""
        message = (
            f"Assigned to {assignee_user_id}" if assignee_user_id else "Assignment cleared"
        )

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            if assignee_user_id is not None and not await self.store.user_exists(assignee_user_id):
                raise AssigneeNotFoundException(f"User {assignee_user_id} not found")
            await self.store.update_dispute(dispute.id, assigned_to_user_id=assignee_user_id)
            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.ASSIGNMENT_UPDATED,
                actor_user_id=actor_user_id,
                status=dispute.status,
                message=message,
                metadata={"assignee_user_id": str(assignee_user_id) if assignee_user_id else None},
            )
            dispute = await self._reload(dispute.id)

        logger.info("Dispute %s assignment updated: %s", dispute_id, message)

        await self._publish(
            EVENT_DEAL_DISPUTE_ASSIGNED,
            dispute.negotiation_id,
            actor_user_id,
            {
                "dispute_id": str(dispute.id),
                "assignee_user_id": str(assignee_user_id) if assignee_user_id else None,
            },
        )
        return dispute

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    async def attach_dispute_evidence(
        self,
        dispute_id: uuid.UUID,
        uploaded_by_user_id: uuid.UUID,
        attachments: list[EvidenceInput],
    ) -> list[DealDisputeEvidence]:
        evidence = _sanitize_evidence(attachments, self.max_attachments)
        if not evidence:
            raise ValidationException("At least one attachment with a url is required")

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            rows = await self._store_evidence(dispute.id, uploaded_by_user_id, evidence)
        self.store.detach(*rows)

        logger.info("Attached %d evidence item(s) to dispute %s", len(rows), dispute_id)

        await self._publish(
            EVENT_DEAL_DISPUTE_EVIDENCE_ATTACHED,
            dispute.negotiation_id,
            uploaded_by_user_id,
            {"dispute_id": str(dispute.id), "attachments": len(rows)},
        )
        return rows

    async def _store_evidence(
        self,
        dispute_id: uuid.UUID,
        uploaded_by_user_id: uuid.UUID,
        evidence: list[EvidenceInput],
    ) -> list[DealDisputeEvidence]:
        rows = [
            DealDisputeEvidence(
                dispute_id=dispute_id,
                uploaded_by_user_id=uploaded_by_user_id,
                type=item.type,
                url=item.url,
                label=item.label,
            )
            for item in evidence
        ]
        await self.store.add_evidence(rows)
        await self.store.append_event(
            dispute_id,
            DealDisputeEventType.EVIDENCE_ATTACHED,
            actor_user_id=uploaded_by_user_id,
            message=f"{len(rows)} evidence item(s) attached",
            metadata={"count": len(rows), "types": sorted({row.type.value for row in rows})},
        )
        return rows

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    async def apply_dispute_escrow_hold(
        self,
        dispute_id: uuid.UUID,
        actor_user_id: uuid.UUID | None,
        amount: Decimal | int | str,
        reason: str | None = None,
    ) -> DealDispute:
        """Earmark ``amount`` of the escrow against the dispute.

        The dispute hold is incremented in the database, so concurrent holds
        accumulate instead of overwriting each other.
        """
        amount = normalise_amount(amount)
        reason = _clean(reason)

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            escrow = await self._escrow_for(dispute)

            hold_total = await self.store.increment_hold(dispute.id, amount)
            await self.ledger.apply_hold(
                escrow.id,
                amount,
                metadata={
                    "dispute_id": str(dispute.id),
                    "reason": reason,
                    "currency": escrow.currency,
                },
            )
            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.ESCROW_HOLD_APPLIED,
                actor_user_id=actor_user_id,
                status=dispute.status,
                message=reason,
                metadata={
                    "amount": str(amount),
                    "currency": escrow.currency,
                    "reason": reason,
                    "hold_total": str(hold_total),
                },
            )
            dispute = await self._reload(dispute.id)

        logger.info("Dispute %s hold +%s %s (total %s)", dispute_id, amount, escrow.currency, hold_total)

        await self._publish(
            EVENT_DEAL_DISPUTE_ESCROW_HOLD,
            dispute.negotiation_id,
            actor_user_id,
            {
                "dispute_id": str(dispute.id),
                "amount": str(amount),
                "currency": escrow.currency,
                "reason": reason,
            },
        )
        return dispute

    async def record_dispute_counter_proposal(
        self,
        dispute_id: uuid.UUID,
        actor_user_id: uuid.UUID | None,
        amount: Decimal | int | str,
        note: str | None = None,
    ) -> DealDispute:
        """Record the latest settlement offer; no funds move."""
        amount = normalise_amount(amount)
        note = _clean(note)

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            negotiation = await self.store.get_negotiation(dispute.negotiation_id)
            currency = (
                negotiation.escrow_account.currency
                if negotiation is not None and negotiation.escrow_account is not None
                else DEFAULT_CURRENCY
            )

            await self.store.update_dispute(dispute.id, counter_proposal_amount=amount)
            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.ESCROW_COUNTER_PROPOSED,
                actor_user_id=actor_user_id,
                status=dispute.status,
                message=note,
                metadata={"amount": str(amount), "currency": currency},
            )
            dispute = await self._reload(dispute.id)

        logger.info("Dispute %s counter-proposal %s %s", dispute_id, amount, currency)

        await self._publish(
            EVENT_DEAL_DISPUTE_ESCROW_COUNTER,
            dispute.negotiation_id,
            actor_user_id,
            {"dispute_id": str(dispute.id), "amount": str(amount), "note": note},
        )
        return dispute

    async def settle_dispute_escrow_payout(
        self,
        dispute_id: uuid.UUID,
        actor_user_id: uuid.UUID | None,
        amount: Decimal | int | str,
        direction: PayoutDirection,
        note: str | None = None,
    ) -> DealDispute:
        """Pay part or all of the hold out to the seller or back to the buyer."""
        amount = normalise_amount(amount)
        note = _clean(note)

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            escrow = await self._escrow_for(dispute)

            remaining = await self.store.release_hold(dispute.id, amount)
            if remaining is None:
                raise InsufficientHoldBalanceException(
                    f"Payout {amount} exceeds the held amount {dispute.hold_amount}",
                    details=[{"amount": str(amount), "hold_amount": str(dispute.hold_amount)}],
                )

            await self.ledger.release_payout(
                escrow.id,
                amount,
                direction,
                metadata={
                    "dispute_id": str(dispute.id),
                    "note": note,
                    "currency": escrow.currency,
                },
                hold_exhausted=remaining == 0,
            )
            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.ESCROW_PAYOUT_RELEASED,
                actor_user_id=actor_user_id,
                status=dispute.status,
                message=note,
                metadata={
                    "amount": str(amount),
                    "currency": escrow.currency,
                    "direction": direction.value,
                    "remaining_hold": str(remaining),
                },
            )
            dispute = await self._reload(dispute.id)

        logger.info(
            "Dispute %s payout %s %s (%s), remaining hold %s",
            dispute_id, amount, escrow.currency, direction.value, remaining,
        )

        await self._publish(
            EVENT_DEAL_DISPUTE_ESCROW_PAYOUT,
            dispute.negotiation_id,
            actor_user_id,
            {
                "dispute_id": str(dispute.id),
                "amount": str(amount),
                "direction": direction.value,
                "remaining_hold": str(remaining),
            },
        )
        return dispute

    # ------------------------------------------------------------------
    # SLA
    # ------------------------------------------------------------------

    async def record_sla_breach(
        self, dispute_id: uuid.UUID, now: datetime | None = None
    ) -> bool:
        """Stamp an overdue dispute as breached.

        Returns False without writing anything when the dispute is not
        overdue, already terminal or already stamped, so repeated sweeps
        never double-fire.
        """
        now = now or datetime.now(UTC)

        async with self.store.unit_of_work():
            dispute = await self._load_for_update(dispute_id)
            escalate_to = (
                DealDisputeStatus.ESCALATED
                if self.auto_escalate and dispute.status in AUTO_ESCALATE_FROM
                else None
            )

            if not await self.store.mark_sla_breached(dispute.id, now, escalate_to=escalate_to):
                return False

            status = escalate_to or dispute.status
            await self.store.append_event(
                dispute.id,
                DealDisputeEventType.SLA_BREACH_RECORDED,
                status=status,
                message="SLA deadline exceeded",
                metadata={
                    "sla_due_at": dispute.sla_due_at.isoformat() if dispute.sla_due_at else None,
                    "escalated": escalate_to is not None,
                },
            )
            dispute = await self._reload(dispute.id)

        logger.info(
            "Dispute %s breached its SLA (escalated=%s)", dispute_id, escalate_to is not None
        )

        await self._publish(
            EVENT_DEAL_DISPUTE_SLA_BREACHED,
            dispute.negotiation_id,
            None,
            {
                "dispute_id": str(dispute.id),
                "status": status.value,
                "escalated": escalate_to is not None,
                "sla_due_at": dispute.sla_due_at.isoformat() if dispute.sla_due_at else None,
            },
        )
        return True

    async def scan_sla_breaches(
        self, now: datetime | None = None, limit: int | None = None
    ) -> list[uuid.UUID]:
        """Record breaches for every overdue dispute; returns the ids stamped."""
        now = now or datetime.now(UTC)

        async with self.store.unit_of_work():
            candidates = await self.store.find_overdue_dispute_ids(now, limit=limit)

        breached: list[uuid.UUID] = []
        for dispute_id in candidates:
            try:
                if await self.record_sla_breach(dispute_id, now=now):
                    breached.append(dispute_id)
            except Exception:
                logger.exception("SLA breach check failed for dispute %s", dispute_id)

        if candidates:
            logger.info(
                "SLA sweep: %d overdue, %d newly breached", len(candidates), len(breached)
            )
        return breached

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_for_update(self, dispute_id: uuid.UUID) -> DealDispute:
        dispute = await self.store.get_dispute(dispute_id, for_update=True)
        if dispute is None:
            raise DisputeNotFoundException(f"Dispute {dispute_id} not found")
        return dispute

    async def _reload(self, dispute_id: uuid.UUID) -> DealDispute:
        dispute = await self.store.get_dispute(dispute_id)
        if dispute is None:
            raise DisputeNotFoundException(f"Dispute {dispute_id} not found")
        self.store.detach(dispute)
        return dispute

    async def _escrow_for(self, dispute: DealDispute) -> EscrowAccount:
        negotiation = await self.store.get_negotiation(dispute.negotiation_id)
        if negotiation is None or negotiation.escrow_account is None:
            raise EscrowNotFoundException(
                f"No escrow account for negotiation {dispute.negotiation_id}"
            )
        return negotiation.escrow_account

    async def _publish(
        self,
        event_type: str,
        negotiation_id: uuid.UUID,
        triggered_by: uuid.UUID | None,
        payload: dict,
    ) -> None:
        # Runs after commit; a failure here must not reach the caller
        try:
            await self.publisher.publish(
                NegotiationEvent(
                    type=event_type,
                    negotiation_id=negotiation_id,
                    triggered_by=triggered_by,
                    payload=payload,
                )
            )
        except Exception:
            logger.exception("Failed to publish %s for negotiation %s", event_type, negotiation_id)

    async def _record_premium_conversion(
        self, negotiation: Negotiation, dispute: DealDispute
    ) -> None:
        if self.premium_recorder is None:
            return
        if negotiation.status != NegotiationStatus.COMPLETED or not negotiation.premium_tier:
            return
        try:
            await self.premium_recorder.record_dispute_resolution(
                negotiation.id, dispute.id, negotiation.premium_tier
            )
        except Exception:
            logger.exception(
                "Premium conversion hook failed for negotiation %s", negotiation.id
            )
