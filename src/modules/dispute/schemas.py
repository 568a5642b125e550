"""Pydantic v2 schemas for deal dispute API endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    DealDisputeCategory,
    DealDisputeEventType,
    DealDisputeEvidenceType,
    DealDisputeSeverity,
    DealDisputeStatus,
    EscrowStatus,
    NegotiationStatus,
    PayoutDirection,
    UserRole,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class EvidenceAttachment(BaseModel):
    url: str = Field(..., max_length=2000)
    type: DealDisputeEvidenceType = DealDisputeEvidenceType.LINK
    label: str | None = Field(None, max_length=255)


class DisputeRaiseRequest(BaseModel):
    summary: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    requested_outcome: str | None = None
    severity: DealDisputeSeverity = DealDisputeSeverity.MEDIUM
    category: DealDisputeCategory = DealDisputeCategory.ESCROW
    attachments: list[EvidenceAttachment] = Field(default_factory=list)


class StatusTransitionRequest(BaseModel):
    status: DealDisputeStatus
    note: str | None = None


class AssignRequest(BaseModel):
    assignee_user_id: uuid.UUID | None = None


class EvidenceAttachRequest(BaseModel):
    attachments: list[EvidenceAttachment] = Field(..., min_length=1)


class EscrowHoldRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    reason: str | None = None


class CounterProposalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    note: str | None = None


class PayoutRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    direction: PayoutDirection
    note: str | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class DisputeEvidenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    dispute_id: uuid.UUID
    uploaded_by_user_id: uuid.UUID
    type: DealDisputeEvidenceType
    url: str
    label: str | None = None
    created_at: datetime


class DisputeEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    dispute_id: uuid.UUID
    sequence: int
    actor_user_id: uuid.UUID | None = None
    type: DealDisputeEventType
    status: DealDisputeStatus | None = None
    message: str | None = None
    metadata: dict | None = Field(None, validation_alias="metadata_")
    created_at: datetime


class DealDisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    negotiation_id: uuid.UUID
    raised_by_user_id: uuid.UUID
    assigned_to_user_id: uuid.UUID | None = None
    status: DealDisputeStatus
    severity: DealDisputeSeverity
    category: DealDisputeCategory
    summary: str
    description: str | None = None
    requested_outcome: str | None = None
    hold_amount: Decimal
    counter_proposal_amount: Decimal | None = None
    resolution_payout_amount: Decimal
    raised_at: datetime
    sla_due_at: datetime | None = None
    sla_breached_at: datetime | None = None
    acknowledged_at: datetime | None = None
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None


class AssigneeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str | None = None
    email: str


class RaisedBySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str | None = None
    role: UserRole


class DisputeQueueItem(BaseModel):
    """One row of the operator triage queue."""

    id: uuid.UUID
    negotiation_id: uuid.UUID
    negotiation_status: NegotiationStatus
    status: DealDisputeStatus
    severity: DealDisputeSeverity
    category: DealDisputeCategory
    summary: str
    description: str | None = None
    requested_outcome: str | None = None
    hold_amount: Decimal
    counter_proposal_amount: Decimal | None = None
    resolution_payout_amount: Decimal
    escrow_status: EscrowStatus | None = None
    escrow_currency: str | None = None
    raised_at: datetime
    sla_due_at: datetime | None = None
    sla_breached_at: datetime | None = None
    assigned_to: AssigneeSummary | None = None
    raised_by: RaisedBySummary
    evidence: list[DisputeEvidenceResponse] = []
    latest_event: DisputeEventResponse | None = None


class DisputeQueueResponse(BaseModel):
    items: list[DisputeQueueItem]
    limit: int
    offset: int


class GuidanceActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    type: str
    target_status: DealDisputeStatus | None = None
    template_id: str | None = None


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    rationale: str
    priority: str
    actions: list[GuidanceActionResponse]


class ChecklistItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    completed: bool
    hint: str | None = None


class CommunicationTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    audience: str
    subject: str
    body: str
    tone: str


class DisputeGuidanceResponse(BaseModel):
    dispute_id: uuid.UUID
    recommendations: list[RecommendationResponse]
    checklist: list[ChecklistItemResponse]
    communications: list[CommunicationTemplateResponse]


class SlaSweepResponse(BaseModel):
    breached: list[uuid.UUID]
    count: int
