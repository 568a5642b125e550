"""Operator guidance for the dispute cockpit.

Derives recommended next actions, templated messages for the parties and a
compliance checklist from a dispute snapshot. Pure functions; callers load the snapshot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_evidence import DealDisputeEvidence
from src.models.enums import DealDisputeSeverity, DealDisputeStatus, EscrowStatus

HOURS_BEFORE_ESCALATION_PROMPT = 6
EVIDENCE_FRESHNESS = timedelta(hours=24)


@dataclass
class GuidanceAction:
    label: str
    type: str  # workflow | status | communication
    target_status: DealDisputeStatus | None = None
    template_id: str | None = None


@dataclass
class Recommendation:
    id: str
    title: str
    rationale: str
    priority: str  # low | medium | high
    actions: list[GuidanceAction] = field(default_factory=list)


@dataclass
class CommunicationTemplate:
    id: str
    label: str
    audience: str  # buyer | seller | both
    subject: str
    body: str
    tone: str  # neutral | firm | collaborative


@dataclass
class ChecklistItem:
    id: str
    label: str
    completed: bool
    hint: str | None = None


@dataclass
class GuidanceContext:
    status: DealDisputeStatus
    severity: DealDisputeSeverity
    escrow_status: EscrowStatus | None
    hold_amount: Decimal
    counter_proposal_amount: Decimal | None
    resolution_payout_amount: Decimal
    acknowledged_at: datetime | None
    resolved_at: datetime | None
    missing_evidence: bool
    hours_until_breach: float | None
    hours_since_breach: float | None
    dispute_id: uuid.UUID | None = None


@dataclass
class DisputeGuidance:
    recommendations: list[Recommendation]
    checklist: list[ChecklistItem]
    communications: list[CommunicationTemplate] = field(default_factory=list)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def build_context(
    dispute: DealDispute,
    evidence: list[DealDisputeEvidence],
    escrow_status: EscrowStatus | None,
    now: datetime | None = None,
) -> GuidanceContext:
    now = now or datetime.now(UTC)
    due = _as_utc(dispute.sla_due_at)
    breached = _as_utc(dispute.sla_breached_at)

    hours_until_breach = None
    hours_since_breach = None
    if breached is not None:
        hours_since_breach = (now - breached).total_seconds() / 3600
    elif due is not None:
        remaining = (due - now).total_seconds() / 3600
        if remaining >= 0:
            hours_until_breach = remaining
        else:
            hours_since_breach = -remaining

    fresh = [e for e in evidence if now - _as_utc(e.created_at) <= EVIDENCE_FRESHNESS]

    return GuidanceContext(
        status=dispute.status,
        severity=dispute.severity,
        escrow_status=escrow_status,
        hold_amount=dispute.hold_amount or Decimal("0"),
        counter_proposal_amount=dispute.counter_proposal_amount,
        resolution_payout_amount=dispute.resolution_payout_amount or Decimal("0"),
        acknowledged_at=dispute.acknowledged_at,
        resolved_at=dispute.resolved_at,
        missing_evidence=not fresh,
        hours_until_breach=hours_until_breach,
        hours_since_breach=hours_since_breach,
        dispute_id=dispute.id,
    )


def _escalation(ctx: GuidanceContext) -> Recommendation | None:
    if ctx.status in (DealDisputeStatus.ESCALATED, DealDisputeStatus.RESOLVED, DealDisputeStatus.CLOSED):
        return None

    overdue = bool(ctx.hours_since_breach and ctx.hours_since_breach > 0)
    high_severity = ctx.severity in (DealDisputeSeverity.HIGH, DealDisputeSeverity.CRITICAL)
    if not (overdue or high_severity):
        return None

    return Recommendation(
        id="escalate-senior-review",
        title="Prepare escalation",
        rationale=(
            "SLA breached, hand over to a senior reviewer."
            if overdue
            else "High or critical severity, prepare an escalation before a backlog builds up."
        ),
        priority="high" if overdue else "medium",
        actions=[
            GuidanceAction(
                label="Set status to escalated",
                type="status",
                target_status=DealDisputeStatus.ESCALATED,
            ),
            GuidanceAction(
                label="Send breach notice to buyer and seller",
                type="communication",
                template_id="breach-notice",
            ),
        ],
    )


def _evidence(ctx: GuidanceContext) -> Recommendation | None:
    if not ctx.missing_evidence or ctx.status in (DealDisputeStatus.RESOLVED, DealDisputeStatus.CLOSED):
        return None

    actions = [
        GuidanceAction(
            label="Message both parties",
            type="communication",
            template_id="evidence-request",
        )
    ]
    # Only offer the status change where the state machine allows it
    if ctx.status in (DealDisputeStatus.UNDER_REVIEW, DealDisputeStatus.ESCALATED):
        actions.insert(
            0,
            GuidanceAction(
                label="Set status to awaiting parties",
                type="status",
                target_status=DealDisputeStatus.AWAITING_PARTIES,
            ),
        )

    return Recommendation(
        id="request-evidence",
        title="Request further evidence",
        rationale="No evidence arrived in the last 24 hours. Ask for photos, delivery papers or chat logs.",
        priority="medium",
        actions=actions,
    )


def _settlement(ctx: GuidanceContext) -> Recommendation | None:
    if ctx.status not in (DealDisputeStatus.UNDER_REVIEW, DealDisputeStatus.AWAITING_PARTIES):
        return None
    if ctx.counter_proposal_amount is None and not ctx.resolution_payout_amount:
        return None

    return Recommendation(
        id="prepare-settlement",
        title="Prepare settlement",
        rationale="Settlement figures are on record. Prepare the final payout or refund and clear it with compliance.",
        priority="medium",
        actions=[
            GuidanceAction(label="Open payout workflow", type="workflow"),
            GuidanceAction(
                label="Draft resolution summary",
                type="communication",
                template_id="resolution-summary",
            ),
        ],
    )


def _grace_window(ctx: GuidanceContext) -> Recommendation | None:
    if ctx.status in (DealDisputeStatus.ESCALATED, DealDisputeStatus.RESOLVED, DealDisputeStatus.CLOSED):
        return None
    if ctx.hours_until_breach is None or ctx.hours_until_breach > HOURS_BEFORE_ESCALATION_PROMPT:
        return None

    return Recommendation(
        id="sla-grace-window",
        title="SLA due soon",
        rationale="The SLA deadline is close. Make sure there is a plan: contact, escalate or partially decide.",
        priority="high" if ctx.hours_until_breach <= 1 else "medium",
        actions=[
            GuidanceAction(
                label="Send a short update to both parties",
                type="communication",
                template_id="sla-update",
            ),
            GuidanceAction(label="Walk through the review checklist", type="workflow"),
        ],
    )


def _checklist(ctx: GuidanceContext) -> list[ChecklistItem]:
    return [
        ChecklistItem(
            id="verify-escrow-status",
            label="Escrow status checked (DISPUTED or hold applied)",
            completed=ctx.escrow_status == EscrowStatus.DISPUTED or ctx.hold_amount > 0,
            hint="Document holds before taking decisions.",
        ),
        ChecklistItem(
            id="evidence-updated",
            label="Fresh evidence received in the last 24h",
            completed=not ctx.missing_evidence,
            hint="Remind the parties if nothing new arrived.",
        ),
        ChecklistItem(
            id="communication-logged",
            label="Dispute acknowledged and communication logged",
            completed=ctx.acknowledged_at is not None,
            hint="Record calls and external communication in the dispute log.",
        ),
        ChecklistItem(
            id="resolution-metrics",
            label="Resolution timestamps recorded for reporting",
            completed=ctx.resolved_at is not None or ctx.status != DealDisputeStatus.RESOLVED,
        ),
    ]


def _communications(ctx: GuidanceContext) -> list[CommunicationTemplate]:
    reference = f'"{ctx.dispute_id}"' if ctx.dispute_id else "your dispute"
    templates = [
        CommunicationTemplate(
            id="evidence-request",
            label="Request evidence",
            audience="both",
            subject="Please submit additional evidence for your dispute",
            body=(
                f"Hello,\n\nwe need further evidence (photos, delivery papers or chat logs) "
                f"to close dispute {reference}. Please upload the documents within the next "
                "12 hours.\n\nThank you,\nOperations team"
            ),
            tone="collaborative",
        ),
        CommunicationTemplate(
            id="breach-notice",
            label="Announce SLA breach",
            audience="both",
            subject="Dispute update: escalation started",
            body=(
                f"Hello,\n\nwe have escalated dispute {reference} because the agreed handling "
                "time was exceeded. A senior specialist is taking over and will be in touch "
                "with the next steps.\n\nBest regards,\nOperations team"
            ),
            tone="firm",
        ),
        CommunicationTemplate(
            id="sla-update",
            label="SLA reminder",
            audience="both",
            subject="Dispute update: please stand by",
            body=(
                f"Hello,\n\nthe SLA deadline for dispute {reference} is approaching. Please keep "
                "any relevant information at hand so we can decide quickly.\n\n"
                "Thanks,\nOperations team"
            ),
            tone="neutral",
        ),
        CommunicationTemplate(
            id="resolution-summary",
            label="Resolution message",
            audience="both",
            subject="Your dispute has been closed",
            body=(
                f"Hello,\n\nwe have closed dispute {reference}. A summary of the decision is "
                "available in the portal. If you have questions, reply directly to this "
                "message.\n\nKind regards,\nOperations team"
            ),
            tone="collaborative",
        ),
    ]

    if ctx.severity == DealDisputeSeverity.CRITICAL:
        templates.append(
            CommunicationTemplate(
                id="vip-concierge-escalation",
                label="Notify concierge escalation",
                audience="buyer",
                subject="Concierge update on your dispute",
                body=(
                    f"Hello,\n\nwe have given dispute {reference} top priority. Our concierge "
                    "team will call you about the next steps.\n\nBest regards,\nConcierge team"
                ),
                tone="collaborative",
            )
        )
    return templates


def build_dispute_guidance(ctx: GuidanceContext) -> DisputeGuidance:
    recommendations = [
        rec
        for rec in (_escalation(ctx), _evidence(ctx), _settlement(ctx), _grace_window(ctx))
        if rec is not None
    ]
    return DisputeGuidance(
        recommendations=recommendations,
        checklist=_checklist(ctx),
        communications=_communications(ctx),
    )
