"""Repository Protocol — dependency inversion for testability.

Unit tests inject an in-memory double that conforms to this Protocol.
Infrastructure layer provides the PostgreSQL implementation.

Transaction ownership: repositories never commit. The unit of work in the
application layer commits or rolls back.
"""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_points.domain.models import LedgerEntry, Member, PointsBalance, RecentRecipient


class PointsRepositoryProtocol(Protocol):
    async def get_balance(self, db: AsyncSession, user_id: str) -> PointsBalance | None: ...

    async def lock_balances(self, db: AsyncSession, user_ids: list[str]) -> None:
        """Create missing rows and row-lock all of them in the given order."""
        ...

    async def credit(self, db: AsyncSession, user_id: str, amount: int) -> PointsBalance: ...

    async def debit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance | None:
        """None when the balance is short; nothing changes in that case."""
        ...

    async def reverse_debit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance: ...

    async def reverse_credit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance | None: ...

    async def insert_entry(
        self,
        db: AsyncSession,
        user_id: str,
        entry_type: str,
        amount: int,
        balance_after: int,
        source: str,
        source_id: str | None,
        description: str | None,
        metadata: dict[str, Any],
        refunded_entry_id: int | None = None,
    ) -> LedgerEntry: ...

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None: ...

    async def get_refund_of(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None: ...

    async def list_entries(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
        source: str | None,
    ) -> list[LedgerEntry]: ...

    async def list_entries_between(
        self, db: AsyncSession, user_id: str, start_at: datetime, end_at: datetime
    ) -> list[LedgerEntry]: ...

    async def list_balances_with_last_entry(
        self, db: AsyncSession
    ) -> list[tuple[PointsBalance, int | None]]: ...

    async def get_member(self, db: AsyncSession, user_id: str) -> Member | None: ...

    async def touch_recipient(
        self, db: AsyncSession, user_id: str, recipient_id: str
    ) -> None: ...

    async def list_recent_recipients(
        self, db: AsyncSession, user_id: str, limit: int
    ) -> list[RecentRecipient]: ...
