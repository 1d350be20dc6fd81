"""003: create transfer_recipients table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transfer_recipients (
            user_id             VARCHAR(64) NOT NULL,
            recipient_id        VARCHAR(64) NOT NULL,
            last_transfer_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            transfer_count      INTEGER     NOT NULL DEFAULT 1,
            PRIMARY KEY (user_id, recipient_id),
            CONSTRAINT ck_transfer_recipients_not_self CHECK (user_id <> recipient_id)
        );
    """)
    op.execute("""
        CREATE INDEX idx_transfer_recipients_recent
        ON transfer_recipients (user_id, last_transfer_at DESC);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transfer_recipients CASCADE;")
