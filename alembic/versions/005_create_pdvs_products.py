"""005: create pdvs and pdv_products tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE pdvs (
            id              VARCHAR(64)     PRIMARY KEY,
            name            VARCHAR(255)    NOT NULL,
            location        VARCHAR(255),
            status          VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            cashback_bps    INTEGER         NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_pdvs_status CHECK (status IN ('ACTIVE', 'INACTIVE')),
            CONSTRAINT ck_pdvs_cashback_range CHECK (cashback_bps BETWEEN 0 AND 10000)
        );
    """)

    op.execute("""
        CREATE TABLE pdv_products (
            id                  VARCHAR(64)     PRIMARY KEY,
            pdv_id              VARCHAR(64)     NOT NULL REFERENCES pdvs (id),
            name                VARCHAR(255)    NOT NULL,
            price_points        INTEGER         NOT NULL DEFAULT 0,
            price_money_cents   BIGINT          NOT NULL DEFAULT 0,
            stock               INTEGER         NOT NULL DEFAULT 0,
            reserved            INTEGER         NOT NULL DEFAULT 0,
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_pdv_products_prices_gte_0 CHECK (
                price_points >= 0 AND price_money_cents >= 0
            ),
            CONSTRAINT ck_pdv_products_reserved_range CHECK (
                reserved >= 0 AND reserved <= stock
            )
        );
    """)
    op.execute("CREATE INDEX idx_pdv_products_pdv ON pdv_products (pdv_id);")
    op.execute("""
        CREATE TRIGGER trg_pdv_products_updated_at
            BEFORE UPDATE ON pdv_products
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS pdv_products CASCADE;")
    op.execute("DROP TABLE IF EXISTS pdvs CASCADE;")
