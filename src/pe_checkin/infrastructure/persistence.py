"""CheckinRepository — PostgreSQL implementation of CheckinRepositoryProtocol.

The UNIQUE (event_id, user_id, checkin_number) index is what makes a
check-in at-most-once; insert_record relies on ON CONFLICT DO NOTHING and
reports the conflict as None.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_checkin.domain.models import CheckinRecord, Event

_RECORD_COLUMNS = """id, event_id, user_id, checkin_number, points_awarded,
              ledger_entry_id, is_manual, created_by, created_at"""

_GET_EVENT_SQL = text("""
    SELECT id, title, status, start_at, end_at, checkins_count,
           checkin_interval_minutes, points_total, qr_secret, is_paused
    FROM events
    WHERE id = :event_id
""")

_GET_RECORD_SQL = text(f"""
    SELECT {_RECORD_COLUMNS}
    FROM event_checkins
    WHERE event_id = :event_id AND user_id = :user_id AND checkin_number = :checkin_number
""")

_INSERT_RECORD_SQL = text(f"""
    INSERT INTO event_checkins
        (event_id, user_id, checkin_number, points_awarded, is_manual, created_by)
    VALUES
        (:event_id, :user_id, :checkin_number, :points_awarded, :is_manual, :created_by)
    ON CONFLICT (event_id, user_id, checkin_number) DO NOTHING
    RETURNING {_RECORD_COLUMNS}
""")

_LINK_ENTRY_SQL = text("""
    UPDATE event_checkins SET ledger_entry_id = :ledger_entry_id WHERE id = :record_id
""")

_USER_NUMBERS_SQL = text("""
    SELECT checkin_number FROM event_checkins
    WHERE event_id = :event_id AND user_id = :user_id
    ORDER BY checkin_number
""")

_COUNT_SQL = text("""
    SELECT COUNT(*) AS total, COUNT(DISTINCT user_id) AS unique_users
    FROM event_checkins
    WHERE event_id = :event_id
""")


def _row_to_event(row: object) -> Event:
    return Event(
        id=str(row.id),  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        start_at=row.start_at,  # type: ignore[attr-defined]
        end_at=row.end_at,  # type: ignore[attr-defined]
        checkins_count=row.checkins_count,  # type: ignore[attr-defined]
        checkin_interval_minutes=row.checkin_interval_minutes,  # type: ignore[attr-defined]
        points_total=row.points_total,  # type: ignore[attr-defined]
        qr_secret=row.qr_secret,  # type: ignore[attr-defined]
        is_paused=row.is_paused,  # type: ignore[attr-defined]
    )


def _row_to_record(row: object) -> CheckinRecord:
    return CheckinRecord(
        id=row.id,  # type: ignore[attr-defined]
        event_id=str(row.event_id),  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        checkin_number=row.checkin_number,  # type: ignore[attr-defined]
        points_awarded=row.points_awarded,  # type: ignore[attr-defined]
        ledger_entry_id=row.ledger_entry_id,  # type: ignore[attr-defined]
        is_manual=row.is_manual,  # type: ignore[attr-defined]
        created_by=row.created_by,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class CheckinRepository:
    async def get_event(self, db: AsyncSession, event_id: str) -> Event | None:
        result = await db.execute(_GET_EVENT_SQL, {"event_id": event_id})
        row = result.fetchone()
        return _row_to_event(row) if row else None

    async def get_record(
        self, db: AsyncSession, event_id: str, user_id: str, checkin_number: int
    ) -> CheckinRecord | None:
        result = await db.execute(
            _GET_RECORD_SQL,
            {"event_id": event_id, "user_id": user_id, "checkin_number": checkin_number},
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def insert_record(
        self,
        db: AsyncSession,
        event_id: str,
        user_id: str,
        checkin_number: int,
        points_awarded: int,
        is_manual: bool,
        created_by: str | None,
    ) -> CheckinRecord | None:
        result = await db.execute(
            _INSERT_RECORD_SQL,
            {
                "event_id": event_id,
                "user_id": user_id,
                "checkin_number": checkin_number,
                "points_awarded": points_awarded,
                "is_manual": is_manual,
                "created_by": created_by,
            },
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def link_ledger_entry(
        self, db: AsyncSession, record_id: int, ledger_entry_id: int
    ) -> None:
        await db.execute(
            _LINK_ENTRY_SQL, {"record_id": record_id, "ledger_entry_id": ledger_entry_id}
        )

    async def list_user_checkin_numbers(
        self, db: AsyncSession, event_id: str, user_id: str
    ) -> list[int]:
        result = await db.execute(_USER_NUMBERS_SQL, {"event_id": event_id, "user_id": user_id})
        return [r.checkin_number for r in result.fetchall()]

    async def count_checkins(self, db: AsyncSession, event_id: str) -> tuple[int, int]:
        result = await db.execute(_COUNT_SQL, {"event_id": event_id})
        row = result.fetchone()
        if row is None:
            return 0, 0
        return int(row.total), int(row.unique_users)
