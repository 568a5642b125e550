"""Deal dispute & escrow resolution tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates: users, negotiations, escrow_accounts, escrow_transactions,
         deal_disputes, deal_dispute_events, deal_dispute_evidence, event_outbox
Enums: userrole, negotiationstatus, escrowstatus, escrowtransactiontype,
       dealdisputestatus, dealdisputeseverity, dealdisputecategory,
       dealdisputeeventtype, dealdisputeevidencetype, eventstatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. Create enum types ──────────────────────────────────────────────
    op.execute("CREATE TYPE userrole AS ENUM ('USER', 'ADMIN');")
    op.execute("""
        CREATE TYPE negotiationstatus AS ENUM (
            'INITIATED', 'IN_PROGRESS', 'ACCEPTED', 'ESCROW_FUNDED',
            'COMPLETED', 'CANCELLED', 'EXPIRED'
        );
    """)
    op.execute("""
        CREATE TYPE escrowstatus AS ENUM (
            'PENDING', 'FUNDED', 'DISPUTED', 'RELEASED', 'REFUNDED', 'CLOSED'
        );
    """)
    op.execute("""
        CREATE TYPE escrowtransactiontype AS ENUM (
            'DISPUTE_HOLD', 'DISPUTE_RELEASE', 'DISPUTE_PAYOUT'
        );
    """)
    op.execute("""
        CREATE TYPE dealdisputestatus AS ENUM (
            'OPEN', 'UNDER_REVIEW', 'AWAITING_PARTIES', 'ESCALATED', 'RESOLVED', 'CLOSED'
        );
    """)
    op.execute("CREATE TYPE dealdisputeseverity AS ENUM ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL');")
    op.execute("CREATE TYPE dealdisputecategory AS ENUM ('ESCROW', 'DELIVERY', 'QUALITY', 'OTHER');")
    op.execute("""
        CREATE TYPE dealdisputeeventtype AS ENUM (
            'CREATED', 'STATUS_CHANGED', 'ESCALATION_TRIGGERED', 'RESOLUTION_RECORDED',
            'ASSIGNMENT_UPDATED', 'EVIDENCE_ATTACHED', 'SLA_BREACH_RECORDED',
            'ESCROW_HOLD_APPLIED', 'ESCROW_COUNTER_PROPOSED', 'ESCROW_PAYOUT_RELEASED'
        );
    """)
    op.execute("CREATE TYPE dealdisputeevidencetype AS ENUM ('LINK', 'FILE', 'NOTE');")
    op.execute("""
        CREATE TYPE eventstatus AS ENUM ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED');
    """)

    # ── 2. Parties and deals ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) NOT NULL UNIQUE,
            name VARCHAR(200),
            role userrole NOT NULL DEFAULT 'USER',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_users_role ON users (role);")

    op.execute("""
        CREATE TABLE negotiations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            buyer_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            seller_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            listing_id UUID,
            listing_title VARCHAR(500),
            status negotiationstatus NOT NULL DEFAULT 'INITIATED',
            premium_tier VARCHAR(50),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX ix_negotiations_buyer_id ON negotiations (buyer_id);")
    op.execute("CREATE INDEX ix_negotiations_seller_id ON negotiations (seller_id);")
    op.execute("CREATE INDEX ix_negotiations_status ON negotiations (status);")

    # ── 3. Escrow ledger ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE escrow_accounts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            negotiation_id UUID NOT NULL UNIQUE REFERENCES negotiations(id) ON DELETE CASCADE,
            status escrowstatus NOT NULL DEFAULT 'PENDING',
            currency VARCHAR(3) NOT NULL DEFAULT 'EUR',
            expected_amount NUMERIC(15, 2),
            funded_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
            released_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
            refunded_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT ck_escrow_accounts_released CHECK (released_amount >= 0),
            CONSTRAINT ck_escrow_accounts_refunded CHECK (refunded_amount >= 0)
        );
    """)
    op.execute("CREATE INDEX ix_escrow_accounts_status ON escrow_accounts (status);")

    op.execute("""
        CREATE TABLE escrow_transactions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            escrow_account_id UUID NOT NULL REFERENCES escrow_accounts(id) ON DELETE CASCADE,
            type escrowtransactiontype NOT NULL,
            amount NUMERIC(15, 2) NOT NULL,
            metadata JSONB,
            occurred_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT ck_escrow_transactions_amount CHECK (amount > 0)
        );
    """)
    op.execute("""
        CREATE INDEX ix_escrow_transactions_account
            ON escrow_transactions (escrow_account_id, occurred_at);
    """)

    # ── 4. Deal disputes ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE deal_disputes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            negotiation_id UUID NOT NULL REFERENCES negotiations(id) ON DELETE CASCADE,
            raised_by_user_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            assigned_to_user_id UUID REFERENCES users(id) ON DELETE SET NULL,

            -- Dispute details
            status dealdisputestatus NOT NULL DEFAULT 'OPEN',
            severity dealdisputeseverity NOT NULL DEFAULT 'MEDIUM',
            category dealdisputecategory NOT NULL DEFAULT 'ESCROW',
            summary VARCHAR(500) NOT NULL,
            description TEXT,
            requested_outcome TEXT,

            -- Financial
            hold_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
            counter_proposal_amount NUMERIC(15, 2),
            resolution_payout_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,

            -- SLA & lifecycle
            raised_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            sla_due_at TIMESTAMPTZ,
            sla_breached_at TIMESTAMPTZ,
            acknowledged_at TIMESTAMPTZ,
            escalated_at TIMESTAMPTZ,
            resolved_at TIMESTAMPTZ,
            closed_at TIMESTAMPTZ,

            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT ck_deal_disputes_hold CHECK (hold_amount >= 0),
            CONSTRAINT ck_deal_disputes_payout CHECK (resolution_payout_amount >= 0)
        );
    """)
    op.execute("CREATE INDEX ix_deal_disputes_negotiation_id ON deal_disputes (negotiation_id);")
    op.execute("CREATE INDEX ix_deal_disputes_status ON deal_disputes (status);")
    op.execute("CREATE INDEX ix_deal_disputes_sla_due_at ON deal_disputes (sla_due_at);")
    # At most one active dispute per negotiation
    op.execute("""
        CREATE UNIQUE INDEX uq_deal_disputes_active_negotiation
            ON deal_disputes (negotiation_id)
            WHERE status IN ('OPEN', 'UNDER_REVIEW', 'AWAITING_PARTIES', 'ESCALATED');
    """)

    op.execute("""
        CREATE TABLE deal_dispute_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            dispute_id UUID NOT NULL REFERENCES deal_disputes(id) ON DELETE CASCADE,
            sequence INTEGER NOT NULL,
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            type dealdisputeeventtype NOT NULL,
            status dealdisputestatus,
            message TEXT,
            metadata JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT uq_deal_dispute_events_sequence UNIQUE (dispute_id, sequence)
        );
    """)
    op.execute("CREATE INDEX ix_deal_dispute_events_type ON deal_dispute_events (type);")

    op.execute("""
        CREATE TABLE deal_dispute_evidence (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            dispute_id UUID NOT NULL REFERENCES deal_disputes(id) ON DELETE CASCADE,
            uploaded_by_user_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            type dealdisputeevidencetype NOT NULL DEFAULT 'LINK',
            url VARCHAR(2000) NOT NULL,
            label VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE INDEX ix_deal_dispute_evidence_dispute_id
            ON deal_dispute_evidence (dispute_id, created_at);
    """)

    # ── 5. Event outbox ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            triggered_by VARCHAR(255),
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            status eventstatus NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            occurred_at TIMESTAMPTZ,
            processed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status_created ON event_outbox (status, created_at);")
    op.execute("""
        CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);
    """)


def downgrade() -> None:
    for table in (
        "event_outbox",
        "deal_dispute_evidence",
        "deal_dispute_events",
        "deal_disputes",
        "escrow_transactions",
        "escrow_accounts",
        "negotiations",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")

    for enum_type in (
        "eventstatus",
        "dealdisputeevidencetype",
        "dealdisputeeventtype",
        "dealdisputecategory",
        "dealdisputeseverity",
        "dealdisputestatus",
        "escrowtransactiontype",
        "escrowstatus",
        "negotiationstatus",
        "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_type};")
