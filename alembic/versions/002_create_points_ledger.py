"""002: create points_balances and ledger_entries tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE points_balances (
            user_id             VARCHAR(64) PRIMARY KEY,
            balance             BIGINT      NOT NULL DEFAULT 0,
            lifetime_earned     BIGINT      NOT NULL DEFAULT 0,
            lifetime_spent      BIGINT      NOT NULL DEFAULT 0,
            version             BIGINT      NOT NULL DEFAULT 0,
            last_transaction_at TIMESTAMPTZ,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_points_balance_gte_0         CHECK (balance >= 0),
            CONSTRAINT ck_points_lifetime_earned_gte_0 CHECK (lifetime_earned >= 0),
            CONSTRAINT ck_points_lifetime_spent_gte_0  CHECK (lifetime_spent >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_points_balances_updated_at
            BEFORE UPDATE ON points_balances
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE points_balances IS 'Materialized member balances — integer points';")

    op.execute("""
        CREATE TABLE ledger_entries (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            entry_type          VARCHAR(10)     NOT NULL,
            amount              BIGINT          NOT NULL,
            balance_after       BIGINT          NOT NULL,
            source              VARCHAR(30)     NOT NULL,
            source_id           VARCHAR(64),
            description         VARCHAR(500),
            metadata            JSONB           NOT NULL DEFAULT '{}'::jsonb,
            refunded_entry_id   BIGINT          REFERENCES ledger_entries (id),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_entry_type CHECK (entry_type IN ('credit', 'debit')),
            CONSTRAINT ck_ledger_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0),
            CONSTRAINT ck_ledger_source CHECK (
                source IN (
                    'EVENT_CHECKIN',
                    'TRANSFER_IN', 'TRANSFER_OUT',
                    'PDV_PURCHASE', 'CASHBACK',
                    'ADMIN_CREDIT', 'ADMIN_DEBIT', 'REFUND',
                    'SUBSCRIPTION_BONUS', 'STORE_PURCHASE', 'DAILY_POST', 'REFERRAL'
                )
            )
        );
    """)
    op.execute("CREATE INDEX idx_ledger_user_id_desc ON ledger_entries (user_id, id DESC);")
    op.execute("CREATE INDEX idx_ledger_user_time ON ledger_entries (user_id, created_at);")
    op.execute("""
        CREATE INDEX idx_ledger_source
        ON ledger_entries (source, source_id)
        WHERE source_id IS NOT NULL;
    """)
    # An entry can be refunded at most once
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_refunded_entry
        ON ledger_entries (refunded_entry_id)
        WHERE refunded_entry_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE ledger_entries IS 'Points ledger — append-only, never updated or deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
    op.execute("DROP TABLE IF EXISTS points_balances CASCADE;")
