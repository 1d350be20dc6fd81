"""Repository Protocol for pe_checkin."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_checkin.domain.models import CheckinRecord, Event


class CheckinRepositoryProtocol(Protocol):
    async def get_event(self, db: AsyncSession, event_id: str) -> Event | None: ...

    async def get_record(
        self, db: AsyncSession, event_id: str, user_id: str, checkin_number: int
    ) -> CheckinRecord | None: ...

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
        """None when (event, user, number) already exists."""
        ...

    async def link_ledger_entry(
        self, db: AsyncSession, record_id: int, ledger_entry_id: int
    ) -> None: ...

    async def list_user_checkin_numbers(
        self, db: AsyncSession, event_id: str, user_id: str
    ) -> list[int]: ...

    async def count_checkins(self, db: AsyncSession, event_id: str) -> tuple[int, int]:
        """(total check-ins, unique users) for the event."""
        ...
