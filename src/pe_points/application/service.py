"""LedgerService — the single write path for point balances.

post_entry is the primitive every engine uses inside its own unit of work:
one conditional balance UPDATE plus one ledger insert carrying the
post-mutation balance. It never commits.

apply_entry and refund are standalone units: they take the user lock, run
post_entry (or the reversal), commit, then publish balance.changed.

Reads (balance, history, summary) take no locks.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.datetime_utils import utc_now
from src.pe_common.enums import EntryType, SummaryPeriod, TransactionSource
from src.pe_common.errors import (
    AlreadyRefundedError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidRefundTargetError,
    LedgerEntryNotFoundError,
    ReasonRequiredError,
)
from src.pe_common.locks import UserLockTable, get_user_locks
from src.pe_common.unit_of_work import run_atomic
from src.pe_notify.domain.events import balance_changed
from src.pe_notify.publisher import PublisherProtocol, get_publisher, publish_all
from src.pe_points.application.schemas import (
    BalanceResponse,
    HistoryResponse,
    LedgerEntryItem,
    SummaryResponse,
    cursor_decode,
    cursor_encode,
)
from src.pe_points.domain.invariants import check_balance
from src.pe_points.domain.models import LedgerEntry, PointsBalance, PointsSummary
from src.pe_points.domain.repository import PointsRepositoryProtocol
from src.pe_points.infrastructure.persistence import PointsRepository

logger = logging.getLogger(__name__)


def validate_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def validate_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ReasonRequiredError()
    return reason.strip()


def period_start(period: SummaryPeriod, now: datetime) -> datetime:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == SummaryPeriod.TODAY:
        return midnight
    if period == SummaryPeriod.WEEK:
        return midnight - timedelta(days=7)
    if period == SummaryPeriod.YEAR:
        return midnight.replace(month=1, day=1)
    return midnight.replace(day=1)


class LedgerService:
    def __init__(
        self,
        repo: PointsRepositoryProtocol | None = None,
        locks: UserLockTable | None = None,
        publisher: PublisherProtocol | None = None,
    ) -> None:
        self._repo: PointsRepositoryProtocol = repo or PointsRepository()
        self._locks = locks if locks is not None else get_user_locks()
        self._publisher = publisher if publisher is not None else get_publisher()

    @property
    def repo(self) -> PointsRepositoryProtocol:
        return self._repo

    @property
    def locks(self) -> UserLockTable:
        return self._locks

    # ------------------------------------------------------------------
    # Write primitive
    # ------------------------------------------------------------------

    async def post_entry(
        self,
        db: AsyncSession,
        user_id: str,
        entry_type: EntryType | str,
        amount: int,
        source: TransactionSource | str,
        source_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """Mutate the balance and append the ledger entry. Caller commits."""
        validate_amount(amount)
        kind = EntryType(entry_type)
        src = TransactionSource(source)

        if kind == EntryType.CREDIT:
            bal = await self._repo.credit(db, user_id, amount)
        else:
            debited = await self._repo.debit(db, user_id, amount)
            if debited is None:
                current = await self._repo.get_balance(db, user_id)
                raise InsufficientBalanceError(amount, current.balance if current else 0)
            bal = debited

        return await self._repo.insert_entry(
            db,
            user_id=user_id,
            entry_type=kind.value,
            amount=amount,
            balance_after=bal.balance,
            source=src.value,
            source_id=source_id,
            description=description,
            metadata=metadata or {},
        )

    async def apply_entry(
        self,
        db: AsyncSession,
        user_id: str,
        entry_type: EntryType | str,
        amount: int,
        source: TransactionSource | str,
        source_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        validate_amount(amount)

        async def _work() -> LedgerEntry:
            await self._repo.lock_balances(db, [user_id])
            return await self.post_entry(
                db, user_id, entry_type, amount, source, source_id, description, metadata
            )

        entry = await run_atomic(db, self._locks, [user_id], _work)
        await publish_all(self._publisher, [balance_changed(user_id, entry.balance_after)])
        return entry

    async def refund(
        self, db: AsyncSession, original_entry_id: int, reason: str, admin_id: str
    ) -> LedgerEntry:
        """Post the inverse of an entry. One refund per entry, ever."""
        reason = validate_reason(reason)
        original = await self._repo.get_entry(db, original_entry_id)
        if original is None:
            raise LedgerEntryNotFoundError(original_entry_id)
        if original.source == TransactionSource.REFUND.value:
            raise InvalidRefundTargetError(original_entry_id)
        if await self._repo.get_refund_of(db, original_entry_id) is not None:
            raise AlreadyRefundedError(original_entry_id)

        user_id = original.user_id

        async def _work() -> LedgerEntry:
            await self._repo.lock_balances(db, [user_id])
            # Re-check under the lock; the unique index catches cross-process races
            if await self._repo.get_refund_of(db, original_entry_id) is not None:
                raise AlreadyRefundedError(original_entry_id)

            bal: PointsBalance | None
            if original.entry_type == EntryType.DEBIT.value:
                inverse = EntryType.CREDIT
                bal = await self._repo.reverse_debit(db, user_id, original.amount)
            else:
                inverse = EntryType.DEBIT
                bal = await self._repo.reverse_credit(db, user_id, original.amount)
                if bal is None:
                    current = await self._repo.get_balance(db, user_id)
                    raise InsufficientBalanceError(
                        original.amount, current.balance if current else 0
                    )

            return await self._repo.insert_entry(
                db,
                user_id=user_id,
                entry_type=inverse.value,
                amount=original.amount,
                balance_after=bal.balance,
                source=TransactionSource.REFUND.value,
                source_id=str(original_entry_id),
                description=f"Refund of entry {original_entry_id}: {reason}",
                metadata={
                    "refunded_by": admin_id,
                    "reason": reason,
                    "original_source": original.source,
                },
                refunded_entry_id=original_entry_id,
            )

        entry = await run_atomic(db, self._locks, [user_id], _work)
        logger.info(
            "Refunded entry %d (%s %d) for user=%s by admin=%s",
            original_entry_id, original.entry_type, original.amount, user_id, admin_id,
        )
        await publish_all(self._publisher, [balance_changed(user_id, entry.balance_after)])
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        bal = await self._repo.get_balance(db, user_id)
        return BalanceResponse.from_balance(bal or PointsBalance(user_id=user_id))

    async def list_history(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        entry_type: str | None = None,
        source: str | None = None,
    ) -> HistoryResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_entries(
            db, user_id, cursor_id, limit + 1, entry_type, source
        )
        has_more = len(entries) > limit
        page = entries[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return HistoryResponse(
            items=[LedgerEntryItem.from_entry(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_summary(
        self,
        db: AsyncSession,
        user_id: str,
        period: SummaryPeriod | str = SummaryPeriod.MONTH,
        now: datetime | None = None,
    ) -> SummaryResponse:
        period = SummaryPeriod(period)
        end_at = now or utc_now()
        start_at = period_start(period, end_at)
        entries = await self._repo.list_entries_between(db, user_id, start_at, end_at)

        summary = PointsSummary(period=period.value, start_at=start_at, end_at=end_at)
        for e in entries:
            if e.entry_type == EntryType.CREDIT.value:
                summary.earned += e.amount
                summary.by_source[e.source] = summary.by_source.get(e.source, 0) + e.amount
            else:
                summary.spent += e.amount
                summary.by_destination[e.source] = (
                    summary.by_destination.get(e.source, 0) + e.amount
                )
        return SummaryResponse.from_summary(summary)

    async def verify_balance_invariants(self, db: AsyncSession) -> list[str]:
        violations: list[str] = []
        for bal, last_balance_after in await self._repo.list_balances_with_last_entry(db):
            violations.extend(check_balance(bal, last_balance_after))
        for msg in violations:
            logger.error("Balance invariant violated: %s", msg)
        return violations
