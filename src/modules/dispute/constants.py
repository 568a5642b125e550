"""Deal dispute state machine transitions, event names, and SLA policy."""

from __future__ import annotations

from datetime import timedelta

from src.config import settings
from src.models.enums import DealDisputeEventType, DealDisputeSeverity, DealDisputeStatus

# Valid transitions: from_status -> allowed to_statuses
VALID_DISPUTE_TRANSITIONS: dict[DealDisputeStatus, frozenset[DealDisputeStatus]] = {
    DealDisputeStatus.OPEN: frozenset({
        DealDisputeStatus.UNDER_REVIEW,
        DealDisputeStatus.ESCALATED,
    }),
    DealDisputeStatus.UNDER_REVIEW: frozenset({
        DealDisputeStatus.AWAITING_PARTIES,
        DealDisputeStatus.ESCALATED,
        DealDisputeStatus.RESOLVED,
    }),
    DealDisputeStatus.AWAITING_PARTIES: frozenset({
        DealDisputeStatus.UNDER_REVIEW,
        DealDisputeStatus.ESCALATED,
    }),
    DealDisputeStatus.ESCALATED: frozenset({
        DealDisputeStatus.UNDER_REVIEW,
        DealDisputeStatus.AWAITING_PARTIES,
        DealDisputeStatus.RESOLVED,
    }),
    # RESOLVED only archives; CLOSED is final
    DealDisputeStatus.RESOLVED: frozenset({DealDisputeStatus.CLOSED}),
    DealDisputeStatus.CLOSED: frozenset(),
}

ACTIVE_DISPUTE_STATUSES: frozenset[DealDisputeStatus] = frozenset({
    DealDisputeStatus.OPEN,
    DealDisputeStatus.UNDER_REVIEW,
    DealDisputeStatus.AWAITING_PARTIES,
    DealDisputeStatus.ESCALATED,
})

TERMINAL_STATUSES: frozenset[DealDisputeStatus] = frozenset({
    DealDisputeStatus.RESOLVED,
    DealDisputeStatus.CLOSED,
})

# Audit event written for a transition into each status
TRANSITION_EVENT_TYPES: dict[DealDisputeStatus, DealDisputeEventType] = {
    DealDisputeStatus.OPEN: DealDisputeEventType.STATUS_CHANGED,
    DealDisputeStatus.UNDER_REVIEW: DealDisputeEventType.STATUS_CHANGED,
    DealDisputeStatus.AWAITING_PARTIES: DealDisputeEventType.STATUS_CHANGED,
    DealDisputeStatus.ESCALATED: DealDisputeEventType.ESCALATION_TRIGGERED,
    DealDisputeStatus.RESOLVED: DealDisputeEventType.RESOLUTION_RECORDED,
    DealDisputeStatus.CLOSED: DealDisputeEventType.STATUS_CHANGED,
}

# Published negotiation event types
EVENT_DEAL_DISPUTE_RAISED = "DEAL_DISPUTE_RAISED"
EVENT_DEAL_DISPUTE_STATUS_CHANGED = "DEAL_DISPUTE_STATUS_CHANGED"
EVENT_DEAL_DISPUTE_ASSIGNED = "DEAL_DISPUTE_ASSIGNED"
EVENT_DEAL_DISPUTE_EVIDENCE_ATTACHED = "DEAL_DISPUTE_EVIDENCE_ATTACHED"
EVENT_DEAL_DISPUTE_ESCROW_HOLD = "DEAL_DISPUTE_ESCROW_HOLD"
EVENT_DEAL_DISPUTE_ESCROW_COUNTER = "DEAL_DISPUTE_ESCROW_COUNTER"
EVENT_DEAL_DISPUTE_ESCROW_PAYOUT = "DEAL_DISPUTE_ESCROW_PAYOUT"
EVENT_DEAL_DISPUTE_SLA_BREACHED = "DEAL_DISPUTE_SLA_BREACHED"

DEFAULT_CURRENCY = "EUR"


def default_sla_windows() -> dict[DealDisputeSeverity, timedelta]:
    """SLA window per severity, higher severity gets the shorter window."""
    return {
        DealDisputeSeverity.LOW: timedelta(hours=settings.dispute_sla_hours_low),
        DealDisputeSeverity.MEDIUM: timedelta(hours=settings.dispute_sla_hours_medium),
        DealDisputeSeverity.HIGH: timedelta(hours=settings.dispute_sla_hours_high),
        DealDisputeSeverity.CRITICAL: timedelta(hours=settings.dispute_sla_hours_critical),
    }
