"""Deal dispute API routers: raising for deal participants, triage for admins."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import async_session
from src.database.session import get_db
from src.exceptions import DisputeNotFoundException
from src.models.enums import DealDisputeCategory, DealDisputeSeverity, DealDisputeStatus
from src.modules.dispute.guidance import build_context, build_dispute_guidance
from src.modules.dispute.queue import DisputeQueueFilter, DisputeQueueService
from src.modules.dispute.schemas import (
    AssignRequest,
    ChecklistItemResponse,
    CommunicationTemplateResponse,
    CounterProposalRequest,
    DealDisputeResponse,
    DisputeEvidenceResponse,
    DisputeGuidanceResponse,
    DisputeQueueResponse,
    DisputeRaiseRequest,
    EscrowHoldRequest,
    EvidenceAttachRequest,
    PayoutRequest,
    RecommendationResponse,
    SlaSweepResponse,
    StatusTransitionRequest,
)
from src.modules.dispute.service import DealDisputeService, EvidenceInput
from src.modules.dispute.store import DisputeStore
from src.modules.identity.auth import Actor, get_current_actor, require_admin
from src.schemas.responses import ERROR_RESPONSES

limiter = Limiter(key_func=get_remote_address)

deals_router = APIRouter(prefix="/deals", tags=["deal-disputes"], responses=ERROR_RESPONSES)
admin_router = APIRouter(
    prefix="/admin/disputes", tags=["deal-disputes-admin"], responses=ERROR_RESPONSES
)


def get_dispute_service(db: AsyncSession = Depends(get_db)) -> DealDisputeService:
    return DealDisputeService.for_session(db, async_session)


def _evidence_inputs(attachments) -> list[EvidenceInput]:
    return [EvidenceInput(url=a.url, type=a.type, label=a.label) for a in attachments]


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


@deals_router.post(
    "/{negotiation_id}/disputes",
    response_model=DealDisputeResponse,
    status_code=201,
)
@limiter.limit("20/minute")
async def raise_dispute(
    request: Request,
    negotiation_id: uuid.UUID,
    body: DisputeRaiseRequest,
    actor: Actor = Depends(get_current_actor),
    service: DealDisputeService = Depends(get_dispute_service),
):
    """Raise a dispute on a deal. Buyer, seller or an admin may raise."""
    dispute = await service.raise_dispute(
        negotiation_id=negotiation_id,
        raised_by_user_id=actor.id,
        summary=body.summary,
        description=body.description,
        requested_outcome=body.requested_outcome,
        severity=body.severity,
        category=body.category,
        attachments=_evidence_inputs(body.attachments),
        participant_only=not actor.is_admin,
    )
    return DealDisputeResponse.model_validate(dispute)


# ---------------------------------------------------------------------------
# Admin triage
# ---------------------------------------------------------------------------


@admin_router.get("/queue", response_model=DisputeQueueResponse)
async def get_queue(
    status: list[DealDisputeStatus] | None = Query(None),
    severity: DealDisputeSeverity | None = Query(None),
    category: DealDisputeCategory | None = Query(None),
    assigned_to: uuid.UUID | None = Query(None),
    negotiation_id: uuid.UUID | None = Query(None),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    _admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Operator queue; active disputes only unless statuses are given."""
    svc = DisputeQueueService(db)
    items = await svc.get_deal_dispute_queue(
        DisputeQueueFilter(
            statuses=status,
            severity=severity,
            category=category,
            assigned_to_user_id=assigned_to,
            negotiation_id=negotiation_id,
            limit=limit,
            offset=offset,
        )
    )
    return DisputeQueueResponse(items=items, limit=svc.page_size(limit), offset=offset)


@admin_router.post("/sla-sweep", response_model=SlaSweepResponse)
async def run_sla_sweep(
    _admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    """Record SLA breaches now instead of waiting for the scheduled sweep."""
    breached = await service.scan_sla_breaches()
    return SlaSweepResponse(breached=breached, count=len(breached))


@admin_router.get("/{dispute_id}/guidance", response_model=DisputeGuidanceResponse)
async def get_guidance(
    dispute_id: uuid.UUID,
    _admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Recommended next actions, message templates and compliance checklist."""
    store = DisputeStore(db)
    dispute = await store.get_dispute(dispute_id)
    if dispute is None:
        raise DisputeNotFoundException(f"Dispute {dispute_id} not found")
    evidence = await store.list_evidence(dispute_id)
    negotiation = await store.get_negotiation(dispute.negotiation_id)
    escrow = negotiation.escrow_account if negotiation else None

    guidance = build_dispute_guidance(
        build_context(dispute, evidence, escrow.status if escrow else None)
    )
    return DisputeGuidanceResponse(
        dispute_id=dispute_id,
        recommendations=[RecommendationResponse.model_validate(r) for r in guidance.recommendations],
        checklist=[ChecklistItemResponse.model_validate(item) for item in guidance.checklist],
        communications=[
            CommunicationTemplateResponse.model_validate(t) for t in guidance.communications
        ],
    )


@admin_router.post("/{dispute_id}/status", response_model=DealDisputeResponse)
async def transition_status(
    dispute_id: uuid.UUID,
    body: StatusTransitionRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    dispute = await service.transition_status(dispute_id, body.status, admin.id, body.note)
    return DealDisputeResponse.model_validate(dispute)


@admin_router.post("/{dispute_id}/assign", response_model=DealDisputeResponse)
async def assign_dispute(
    dispute_id: uuid.UUID,
    body: AssignRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    dispute = await service.assign_deal_dispute(dispute_id, body.assignee_user_id, admin.id)
    return DealDisputeResponse.model_validate(dispute)


@admin_router.post(
    "/{dispute_id}/evidence",
    response_model=list[DisputeEvidenceResponse],
    status_code=201,
)
async def attach_evidence(
    dispute_id: uuid.UUID,
    body: EvidenceAttachRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    rows = await service.attach_dispute_evidence(
        dispute_id, admin.id, _evidence_inputs(body.attachments)
    )
    return [DisputeEvidenceResponse.model_validate(row) for row in rows]


@admin_router.post("/{dispute_id}/escrow/hold", response_model=DealDisputeResponse)
async def apply_escrow_hold(
    dispute_id: uuid.UUID,
    body: EscrowHoldRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    dispute = await service.apply_dispute_escrow_hold(
        dispute_id, admin.id, body.amount, body.reason
    )
    return DealDisputeResponse.model_validate(dispute)


@admin_router.post("/{dispute_id}/escrow/counter", response_model=DealDisputeResponse)
async def record_counter_proposal(
    dispute_id: uuid.UUID,
    body: CounterProposalRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    dispute = await service.record_dispute_counter_proposal(
        dispute_id, admin.id, body.amount, body.note
    )
    return DealDisputeResponse.model_validate(dispute)


@admin_router.post("/{dispute_id}/escrow/payout", response_model=DealDisputeResponse)
async def settle_escrow_payout(
    dispute_id: uuid.UUID,
    body: PayoutRequest,
    admin: Actor = Depends(require_admin),
    service: DealDisputeService = Depends(get_dispute_service),
):
    dispute = await service.settle_dispute_escrow_payout(
        dispute_id, admin.id, body.amount, body.direction, body.note
    )
    return DealDisputeResponse.model_validate(dispute)
