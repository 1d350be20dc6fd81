"""PointsRepository — concrete implementation of PointsRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A result of 0 rows on a guarded UPDATE means the balance was short.

Transaction ownership: the CALLER (unit of work in the application layer)
commits or rolls back. Nothing here commits.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pe_common.errors import AlreadyRefundedError, InternalError
from src.pe_points.domain.models import LedgerEntry, Member, PointsBalance, RecentRecipient

_BALANCE_COLUMNS = """user_id, balance, lifetime_earned, lifetime_spent, version,
              last_transaction_at, created_at, updated_at"""

_ENTRY_COLUMNS = """id, user_id, entry_type, amount, balance_after, source, source_id,
              description, metadata, refunded_entry_id, created_at"""

# ---------------------------------------------------------------------------
# SQL: locking
# ---------------------------------------------------------------------------

_SET_LOCK_TIMEOUT_SQL = text("SELECT set_config('lock_timeout', :timeout, true)")

_ENSURE_BALANCE_SQL = text("""
    INSERT INTO points_balances (user_id) VALUES (:user_id)
    ON CONFLICT (user_id) DO NOTHING
""")

_LOCK_BALANCES_SQL = text("""
    SELECT user_id FROM points_balances
    WHERE user_id = ANY(:user_ids)
    ORDER BY user_id
    FOR UPDATE
""")

# ---------------------------------------------------------------------------
# SQL: balance mutations
# ---------------------------------------------------------------------------

_CREDIT_SQL = text(f"""
    INSERT INTO points_balances
        (user_id, balance, lifetime_earned, version, last_transaction_at)
    VALUES (:user_id, :amount, :amount, 1, NOW())
    ON CONFLICT (user_id) DO UPDATE
    SET balance = points_balances.balance + EXCLUDED.balance,
        lifetime_earned = points_balances.lifetime_earned + EXCLUDED.lifetime_earned,
        version = points_balances.version + 1,
        last_transaction_at = NOW(),
        updated_at = NOW()
    RETURNING {_BALANCE_COLUMNS}
""")

_DEBIT_SQL = text(f"""
    UPDATE points_balances
    SET balance = balance - :amount,
        lifetime_spent = lifetime_spent + :amount,
        version = version + 1,
        last_transaction_at = NOW(),
        updated_at = NOW()
    WHERE user_id = :user_id AND balance >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

# Refund of a debit: give the points back and lower lifetime_spent
_REVERSE_DEBIT_SQL = text(f"""
    UPDATE points_balances
    SET balance = balance + :amount,
        lifetime_spent = lifetime_spent - :amount,
        version = version + 1,
        last_transaction_at = NOW(),
        updated_at = NOW()
    WHERE user_id = :user_id AND lifetime_spent >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

# Refund of a credit: take the points back and lower lifetime_earned
_REVERSE_CREDIT_SQL = text(f"""
    UPDATE points_balances
    SET balance = balance - :amount,
        lifetime_earned = lifetime_earned - :amount,
        version = version + 1,
        last_transaction_at = NOW(),
        updated_at = NOW()
    WHERE user_id = :user_id AND balance >= :amount AND lifetime_earned >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

_GET_BALANCE_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS}
    FROM points_balances
    WHERE user_id = :user_id
""")

# ---------------------------------------------------------------------------
# SQL: ledger
# ---------------------------------------------------------------------------

_INSERT_ENTRY_SQL = text(f"""
    INSERT INTO ledger_entries
        (user_id, entry_type, amount, balance_after, source, source_id,
         description, metadata, refunded_entry_id)
    VALUES
        (:user_id, :entry_type, :amount, :balance_after, :source, :source_id,
         :description, CAST(:metadata AS JSONB), :refunded_entry_id)
    RETURNING {_ENTRY_COLUMNS}
""")

_GET_ENTRY_SQL = text(f"SELECT {_ENTRY_COLUMNS} FROM ledger_entries WHERE id = :entry_id")

_GET_REFUND_OF_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS} FROM ledger_entries WHERE refunded_entry_id = :entry_id
""")

_LIST_ENTRIES_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:entry_type AS TEXT) IS NULL OR entry_type = CAST(:entry_type AS TEXT))
      AND (CAST(:source AS TEXT) IS NULL OR source = CAST(:source AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_ENTRIES_BETWEEN_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE user_id = :user_id AND created_at >= :start_at AND created_at <= :end_at
    ORDER BY id
""")

_BALANCES_WITH_LAST_ENTRY_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS},
           (SELECT l.balance_after FROM ledger_entries l
            WHERE l.user_id = b.user_id
            ORDER BY l.id DESC LIMIT 1) AS last_balance_after
    FROM points_balances b
    ORDER BY b.user_id
""")

# ---------------------------------------------------------------------------
# SQL: members and recipients
# ---------------------------------------------------------------------------

_GET_MEMBER_SQL = text("""
    SELECT id, name, avatar_url, is_active FROM users WHERE id = :user_id
""")

_TOUCH_RECIPIENT_SQL = text("""
    INSERT INTO transfer_recipients (user_id, recipient_id, last_transfer_at, transfer_count)
    VALUES (:user_id, :recipient_id, NOW(), 1)
    ON CONFLICT (user_id, recipient_id) DO UPDATE
    SET last_transfer_at = NOW(),
        transfer_count = transfer_recipients.transfer_count + 1
""")

_LIST_RECIPIENTS_SQL = text("""
    SELECT r.recipient_id, u.name, u.avatar_url, r.last_transfer_at, r.transfer_count
    FROM transfer_recipients r
    JOIN users u ON u.id = r.recipient_id
    WHERE r.user_id = :user_id
    ORDER BY r.last_transfer_at DESC
    LIMIT :limit
""")


def _load_json(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return dict(json.loads(value))
    return dict(value)


def _row_to_balance(row: object) -> PointsBalance:
    return PointsBalance(
        user_id=row.user_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        lifetime_earned=row.lifetime_earned,  # type: ignore[attr-defined]
        lifetime_spent=row.lifetime_spent,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        last_transaction_at=row.last_transaction_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_entry(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        entry_type=row.entry_type,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        source=row.source,  # type: ignore[attr-defined]
        source_id=row.source_id,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        metadata=_load_json(row.metadata),  # type: ignore[attr-defined]
        refunded_entry_id=row.refunded_entry_id,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class PointsRepository:
    """Concrete repository — all balance operations atomic at the SQL level."""

    async def get_balance(self, db: AsyncSession, user_id: str) -> PointsBalance | None:
        result = await db.execute(_GET_BALANCE_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_balance(row) if row else None

    async def lock_balances(self, db: AsyncSession, user_ids: list[str]) -> None:
        ordered = sorted(set(user_ids))
        await db.execute(
            _SET_LOCK_TIMEOUT_SQL, {"timeout": f"{settings.LEDGER_LOCK_TIMEOUT_MS}ms"}
        )
        for uid in ordered:
            await db.execute(_ENSURE_BALANCE_SQL, {"user_id": uid})
        await db.execute(_LOCK_BALANCES_SQL, {"user_ids": ordered})

    async def credit(self, db: AsyncSession, user_id: str, amount: int) -> PointsBalance:
        result = await db.execute(_CREDIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            raise InternalError("Balance upsert returned no rows — this should never happen")
        return _row_to_balance(row)

    async def debit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance | None:
        result = await db.execute(_DEBIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        return _row_to_balance(row) if row else None

    async def reverse_debit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance:
        result = await db.execute(_REVERSE_DEBIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            raise InternalError(f"lifetime_spent of {user_id} is below refund amount {amount}")
        return _row_to_balance(row)

    async def reverse_credit(
        self, db: AsyncSession, user_id: str, amount: int
    ) -> PointsBalance | None:
        result = await db.execute(_REVERSE_CREDIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        return _row_to_balance(row) if row else None

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
    ) -> LedgerEntry:
        try:
            result = await db.execute(
                _INSERT_ENTRY_SQL,
                {
                    "user_id": user_id,
                    "entry_type": entry_type,
                    "amount": amount,
                    "balance_after": balance_after,
                    "source": source,
                    "source_id": source_id,
                    "description": description,
                    "metadata": json.dumps(metadata or {}, default=str),
                    "refunded_entry_id": refunded_entry_id,
                },
            )
        except IntegrityError:
            if refunded_entry_id is not None:
                raise AlreadyRefundedError(refunded_entry_id) from None
            raise
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows — this should never happen")
        return _row_to_entry(row)

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None:
        result = await db.execute(_GET_ENTRY_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def get_refund_of(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None:
        result = await db.execute(_GET_REFUND_OF_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def list_entries(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
        source: str | None,
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_ENTRIES_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "limit": limit,
                "entry_type": entry_type,
                "source": source,
            },
        )
        return [_row_to_entry(r) for r in result.fetchall()]

    async def list_entries_between(
        self, db: AsyncSession, user_id: str, start_at: datetime, end_at: datetime
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_ENTRIES_BETWEEN_SQL,
            {"user_id": user_id, "start_at": start_at, "end_at": end_at},
        )
        return [_row_to_entry(r) for r in result.fetchall()]

    async def list_balances_with_last_entry(
        self, db: AsyncSession
    ) -> list[tuple[PointsBalance, int | None]]:
        result = await db.execute(_BALANCES_WITH_LAST_ENTRY_SQL)
        return [
            (_row_to_balance(r), r.last_balance_after)  # type: ignore[attr-defined]
            for r in result.fetchall()
        ]

    async def get_member(self, db: AsyncSession, user_id: str) -> Member | None:
        result = await db.execute(_GET_MEMBER_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            return None
        return Member(
            id=str(row.id),
            name=row.name,
            avatar_url=row.avatar_url,
            is_active=row.is_active,
        )

    async def touch_recipient(
        self, db: AsyncSession, user_id: str, recipient_id: str
    ) -> None:
        await db.execute(
            _TOUCH_RECIPIENT_SQL, {"user_id": user_id, "recipient_id": recipient_id}
        )

    async def list_recent_recipients(
        self, db: AsyncSession, user_id: str, limit: int
    ) -> list[RecentRecipient]:
        result = await db.execute(_LIST_RECIPIENTS_SQL, {"user_id": user_id, "limit": limit})
        return [
            RecentRecipient(
                recipient_id=str(r.recipient_id),
                name=r.name,
                avatar_url=r.avatar_url,
                last_transfer_at=r.last_transfer_at,
                transfer_count=r.transfer_count,
            )
            for r in result.fetchall()
        ]
