"""Tests for dispute cockpit guidance (recommendations, templates and checklist)."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_evidence import DealDisputeEvidence
from src.models.enums import DealDisputeSeverity, DealDisputeStatus, EscrowStatus
from src.modules.dispute.guidance import build_context, build_dispute_guidance

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _dispute(**overrides) -> DealDispute:
    values = {
        "status": DealDisputeStatus.UNDER_REVIEW,
        "severity": DealDisputeSeverity.MEDIUM,
        "hold_amount": Decimal("0"),
        "resolution_payout_amount": Decimal("0"),
        "counter_proposal_amount": None,
        "raised_at": NOW - timedelta(hours=10),
        "sla_due_at": NOW + timedelta(hours=48),
        "acknowledged_at": NOW - timedelta(hours=9),
    }
    values.update(overrides)
    return DealDispute(**values)


def _evidence(hours_ago: float) -> DealDisputeEvidence:
    return DealDisputeEvidence(url="https://files.example.com/x.jpg", created_at=NOW - timedelta(hours=hours_ago))


def _guidance(dispute, evidence=(), escrow_status=EscrowStatus.FUNDED):
    return build_dispute_guidance(build_context(dispute, list(evidence), escrow_status, now=NOW))


def _ids(guidance):
    return [rec.id for rec in guidance.recommendations]


class TestBuildContext:
    def test_hours_until_breach(self):
        ctx = build_context(_dispute(), [], EscrowStatus.FUNDED, now=NOW)

        assert ctx.hours_until_breach == 48
        assert ctx.hours_since_breach is None
        assert ctx.missing_evidence is True

    def test_overdue_without_stamp_counts_as_breached(self):
        ctx = build_context(
            _dispute(sla_due_at=NOW - timedelta(hours=3)), [], EscrowStatus.FUNDED, now=NOW
        )

        assert ctx.hours_until_breach is None
        assert ctx.hours_since_breach == 3

    def test_naive_timestamps_are_read_as_utc(self):
        naive_due = (NOW + timedelta(hours=2)).replace(tzinfo=None)
        ctx = build_context(_dispute(sla_due_at=naive_due), [_evidence(1)], None, now=NOW)

        assert ctx.hours_until_breach == 2
        assert ctx.missing_evidence is False


class TestRecommendations:
    def test_calm_dispute_with_fresh_evidence_needs_nothing(self):
        guidance = _guidance(_dispute(), [_evidence(2)])

        assert guidance.recommendations == []

    def test_breach_recommends_escalation(self):
        guidance = _guidance(_dispute(sla_due_at=NOW - timedelta(hours=1)), [_evidence(2)])

        [rec] = guidance.recommendations
        assert rec.id == "escalate-senior-review"
        assert rec.priority == "high"
        assert rec.actions[0].target_status == DealDisputeStatus.ESCALATED

    def test_high_severity_prepares_escalation(self):
        guidance = _guidance(_dispute(severity=DealDisputeSeverity.CRITICAL), [_evidence(2)])

        assert _ids(guidance) == ["escalate-senior-review"]
        assert guidance.recommendations[0].priority == "medium"

    def test_escalated_dispute_is_not_escalated_again(self):
        guidance = _guidance(
            _dispute(status=DealDisputeStatus.ESCALATED, severity=DealDisputeSeverity.HIGH),
            [_evidence(2)],
        )

        assert "escalate-senior-review" not in _ids(guidance)

    def test_stale_evidence_requests_more(self):
        guidance = _guidance(_dispute(), [_evidence(30)])

        [rec] = guidance.recommendations
        assert rec.id == "request-evidence"
        assert rec.actions[0].target_status == DealDisputeStatus.AWAITING_PARTIES

    def test_open_dispute_gets_no_awaiting_parties_action(self):
        guidance = _guidance(_dispute(status=DealDisputeStatus.OPEN))

        rec = next(r for r in guidance.recommendations if r.id == "request-evidence")
        assert all(action.target_status is None for action in rec.actions)

    def test_settlement_when_figures_on_record(self):
        guidance = _guidance(_dispute(counter_proposal_amount=Decimal("120")), [_evidence(1)])

        assert _ids(guidance) == ["prepare-settlement"]

    def test_grace_window_inside_six_hours(self):
        guidance = _guidance(_dispute(sla_due_at=NOW + timedelta(minutes=30)), [_evidence(1)])

        [rec] = guidance.recommendations
        assert rec.id == "sla-grace-window"
        assert rec.priority == "high"

    def test_resolved_dispute_has_no_recommendations(self):
        guidance = _guidance(
            _dispute(
                status=DealDisputeStatus.RESOLVED,
                resolved_at=NOW,
                sla_due_at=NOW - timedelta(hours=5),
                severity=DealDisputeSeverity.CRITICAL,
            )
        )

        assert guidance.recommendations == []


class TestChecklist:
    def test_items_track_dispute_state(self):
        guidance = _guidance(
            _dispute(hold_amount=Decimal("100")), [_evidence(3)], escrow_status=EscrowStatus.DISPUTED
        )

        checklist = {item.id: item.completed for item in guidance.checklist}
        assert checklist == {
            "verify-escrow-status": True,
            "evidence-updated": True,
            "communication-logged": True,
            "resolution-metrics": True,
        }

    def test_fresh_open_dispute_checklist(self):
        guidance = _guidance(_dispute(status=DealDisputeStatus.OPEN, acknowledged_at=None))

        checklist = {item.id: item.completed for item in guidance.checklist}
        assert checklist["verify-escrow-status"] is False
        assert checklist["evidence-updated"] is False
        assert checklist["communication-logged"] is False


class TestCommunications:
    def test_templates_behind_recommended_actions(self):
        dispute = _dispute(id=uuid.uuid4(), sla_due_at=NOW - timedelta(hours=1))
        guidance = _guidance(dispute)

        templates = {t.id: t for t in guidance.communications}
        assert list(templates) == [
            "evidence-request",
            "breach-notice",
            "sla-update",
            "resolution-summary",
        ]
        referenced = {
            action.template_id
            for rec in guidance.recommendations
            for action in rec.actions
            if action.template_id
        }
        assert referenced <= set(templates)
        assert templates["breach-notice"].tone == "firm"
        assert all(t.audience == "both" for t in templates.values())
        assert str(dispute.id) in templates["evidence-request"].body

    def test_critical_dispute_adds_concierge_template(self):
        guidance = _guidance(_dispute(severity=DealDisputeSeverity.CRITICAL), [_evidence(1)])

        concierge = guidance.communications[-1]
        assert concierge.id == "vip-concierge-escalation"
        assert concierge.audience == "buyer"
        assert "your dispute" in concierge.body
