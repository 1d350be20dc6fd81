"""006: create pdv_checkouts and orders tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE pdv_checkouts (
            code                VARCHAR(6)      PRIMARY KEY,
            pdv_id              VARCHAR(64)     NOT NULL REFERENCES pdvs (id),
            items               JSONB           NOT NULL,
            total_points        BIGINT          NOT NULL,
            total_money_cents   BIGINT          NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'OPEN',
            user_id             VARCHAR(64),
            expires_at          TIMESTAMPTZ     NOT NULL,
            payment_method      VARCHAR(10),
            points_used         BIGINT          NOT NULL DEFAULT 0,
            money_paid_cents    BIGINT          NOT NULL DEFAULT 0,
            cashback_earned     BIGINT          NOT NULL DEFAULT 0,
            external_payment_id VARCHAR(128),
            order_id            VARCHAR(64),
            balance_after       BIGINT,
            paid_at             TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_pdv_checkouts_status CHECK (
                status IN ('OPEN', 'RESERVED', 'PAID', 'EXPIRED', 'CANCELLED')
            ),
            CONSTRAINT ck_pdv_checkouts_payment_method CHECK (
                payment_method IS NULL OR payment_method IN ('POINTS', 'MONEY', 'MIXED')
            ),
            CONSTRAINT ck_pdv_checkouts_totals_gte_0 CHECK (
                total_points >= 0 AND total_money_cents >= 0
            ),
            CONSTRAINT ck_pdv_checkouts_reserved_has_user CHECK (
                status NOT IN ('RESERVED', 'PAID') OR user_id IS NOT NULL
            ),
            CONSTRAINT ck_pdv_checkouts_paid_settled CHECK (
                status <> 'PAID' OR (payment_method IS NOT NULL AND order_id IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_pdv_checkouts_live_expiry
        ON pdv_checkouts (expires_at)
        WHERE status IN ('OPEN', 'RESERVED');
    """)
    op.execute("CREATE INDEX idx_pdv_checkouts_pdv ON pdv_checkouts (pdv_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_pdv_checkouts_updated_at
            BEFORE UPDATE ON pdv_checkouts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE orders (
            id                  VARCHAR(64)     PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            pdv_id              VARCHAR(64)     NOT NULL REFERENCES pdvs (id),
            checkout_code       VARCHAR(6)      NOT NULL REFERENCES pdv_checkouts (code),
            items               JSONB           NOT NULL,
            payment_method      VARCHAR(10)     NOT NULL,
            points_used         BIGINT          NOT NULL DEFAULT 0,
            money_paid_cents    BIGINT          NOT NULL DEFAULT 0,
            cashback_earned     BIGINT          NOT NULL DEFAULT 0,
            external_payment_id VARCHAR(128),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_checkout_code UNIQUE (checkout_code)
        );
    """)
    op.execute("CREATE INDEX idx_orders_user_time ON orders (user_id, created_at DESC);")
    op.execute("COMMENT ON TABLE orders IS 'One order per paid checkout';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
    op.execute("DROP TABLE IF EXISTS pdv_checkouts CASCADE;")
