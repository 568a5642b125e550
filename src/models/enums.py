import enum


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


# ── Negotiations & escrow ───────────────────────────────────────────────────


class NegotiationStatus(str, enum.Enum):
    INITIATED = "INITIATED"
    IN_PROGRESS = "IN_PROGRESS"
    ACCEPTED = "ACCEPTED"
    ESCROW_FUNDED = "ESCROW_FUNDED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class EscrowStatus(str, enum.Enum):
    PENDING = "PENDING"
    FUNDED = "FUNDED"
    DISPUTED = "DISPUTED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"
    CLOSED = "CLOSED"


class EscrowTransactionType(str, enum.Enum):
    DISPUTE_HOLD = "DISPUTE_HOLD"
    DISPUTE_RELEASE = "DISPUTE_RELEASE"
    DISPUTE_PAYOUT = "DISPUTE_PAYOUT"


class PayoutDirection(str, enum.Enum):
    RELEASE_TO_SELLER = "RELEASE_TO_SELLER"
    REFUND_TO_BUYER = "REFUND_TO_BUYER"


# ── Deal disputes ───────────────────────────────────────────────────────────


class DealDisputeStatus(str, enum.Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    AWAITING_PARTIES = "AWAITING_PARTIES"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class DealDisputeSeverity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DealDisputeCategory(str, enum.Enum):
    ESCROW = "ESCROW"
    DELIVERY = "DELIVERY"
    QUALITY = "QUALITY"
    OTHER = "OTHER"


class DealDisputeEventType(str, enum.Enum):
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ESCALATION_TRIGGERED = "ESCALATION_TRIGGERED"
    RESOLUTION_RECORDED = "RESOLUTION_RECORDED"
    ASSIGNMENT_UPDATED = "ASSIGNMENT_UPDATED"
    EVIDENCE_ATTACHED = "EVIDENCE_ATTACHED"
    SLA_BREACH_RECORDED = "SLA_BREACH_RECORDED"
    ESCROW_HOLD_APPLIED = "ESCROW_HOLD_APPLIED"
    ESCROW_COUNTER_PROPOSED = "ESCROW_COUNTER_PROPOSED"
    ESCROW_PAYOUT_RELEASED = "ESCROW_PAYOUT_RELEASED"


class DealDisputeEvidenceType(str, enum.Enum):
    LINK = "LINK"
    FILE = "FILE"
    NOTE = "NOTE"


# ── Event outbox ────────────────────────────────────────────────────────────


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
