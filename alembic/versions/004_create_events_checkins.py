"""004: create events and event_checkins tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE events (
            id                          VARCHAR(64)     PRIMARY KEY,
            title                       VARCHAR(255)    NOT NULL,
            status                      VARCHAR(20)     NOT NULL DEFAULT 'SCHEDULED',
            start_at                    TIMESTAMPTZ     NOT NULL,
            end_at                      TIMESTAMPTZ     NOT NULL,
            checkins_count              INTEGER         NOT NULL DEFAULT 1,
            checkin_interval_minutes    INTEGER         NOT NULL DEFAULT 30,
            points_total                INTEGER         NOT NULL DEFAULT 0,
            qr_secret                   VARCHAR(128)    NOT NULL,
            is_paused                   BOOLEAN         NOT NULL DEFAULT FALSE,
            CONSTRAINT ck_events_status CHECK (
                status IN ('SCHEDULED', 'ONGOING', 'ENDED', 'CANCELLED')
            ),
            CONSTRAINT ck_events_time_order CHECK (end_at > start_at),
            CONSTRAINT ck_events_checkins_gte_1 CHECK (checkins_count >= 1),
            CONSTRAINT ck_events_interval_gt_0 CHECK (checkin_interval_minutes > 0),
            CONSTRAINT ck_events_points_gte_0 CHECK (points_total >= 0)
        );
    """)

    op.execute("""
        CREATE TABLE event_checkins (
            id                  BIGSERIAL   PRIMARY KEY,
            event_id            VARCHAR(64) NOT NULL REFERENCES events (id),
            user_id             VARCHAR(64) NOT NULL,
            checkin_number      INTEGER     NOT NULL,
            points_awarded      INTEGER     NOT NULL DEFAULT 0,
            ledger_entry_id     BIGINT      REFERENCES ledger_entries (id),
            is_manual           BOOLEAN     NOT NULL DEFAULT FALSE,
            created_by          VARCHAR(64),
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_event_checkins_once UNIQUE (event_id, user_id, checkin_number),
            CONSTRAINT ck_event_checkins_number_gte_1 CHECK (checkin_number >= 1),
            CONSTRAINT ck_event_checkins_points_gte_0 CHECK (points_awarded >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_event_checkins_event ON event_checkins (event_id);")
    op.execute("COMMENT ON TABLE event_checkins IS 'One row per (event, member, check-in number)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS event_checkins CASCADE;")
    op.execute("DROP TABLE IF EXISTS events CASCADE;")
