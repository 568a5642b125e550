# Import all models so SQLAlchemy metadata is populated for Alembic and create_all
from src.models.deal_dispute import DealDispute
from src.models.deal_dispute_event import DealDisputeEvent
from src.models.deal_dispute_evidence import DealDisputeEvidence
from src.models.enums import (
    DealDisputeCategory,
    DealDisputeEventType,
    DealDisputeEvidenceType,
    DealDisputeSeverity,
    DealDisputeStatus,
    EscrowStatus,
    EscrowTransactionType,
    EventStatus,
    NegotiationStatus,
    PayoutDirection,
    UserRole,
)
from src.models.escrow_account import EscrowAccount
from src.models.escrow_transaction import EscrowTransaction
from src.models.event_outbox import EventOutbox
from src.models.negotiation import Negotiation
from src.models.user import User

__all__ = [
    "DealDispute",
    "DealDisputeCategory",
    "DealDisputeEvent",
    "DealDisputeEventType",
    "DealDisputeEvidence",
    "DealDisputeEvidenceType",
    "DealDisputeSeverity",
    "DealDisputeStatus",
    "EscrowAccount",
    "EscrowStatus",
    "EscrowTransaction",
    "EscrowTransactionType",
    "EventOutbox",
    "EventStatus",
    "Negotiation",
    "NegotiationStatus",
    "PayoutDirection",
    "User",
    "UserRole",
]
