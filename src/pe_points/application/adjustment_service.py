"""AdjustmentService — admin grant, deduct and refund.

Every adjustment needs a non-blank reason and an existing target member.
Deduct uses the same guarded debit as everything else, so it can never
drive a balance below zero.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.enums import EntryType, TransactionSource
from src.pe_common.errors import MemberNotFoundError
from src.pe_points.application.schemas import AdjustmentResponse
from src.pe_points.application.service import LedgerService, validate_amount, validate_reason

logger = logging.getLogger(__name__)


class AdjustmentService:
    def __init__(self, ledger: LedgerService | None = None) -> None:
        self._ledger = ledger or LedgerService()
        self._repo = self._ledger.repo

    async def _require_member(self, db: AsyncSession, user_id: str) -> None:
        if await self._repo.get_member(db, user_id) is None:
            raise MemberNotFoundError(user_id)

    async def grant(
        self, db: AsyncSession, admin_id: str, user_id: str, amount: int, reason: str
    ) -> AdjustmentResponse:
        reason = validate_reason(reason)
        validate_amount(amount)
        await self._require_member(db, user_id)
        entry = await self._ledger.apply_entry(
            db,
            user_id,
            EntryType.CREDIT,
            amount,
            TransactionSource.ADMIN_CREDIT,
            description=reason,
            metadata={"granted_by": admin_id},
        )
        logger.info("Admin %s granted %d points to %s: %s", admin_id, amount, user_id, reason)
        return AdjustmentResponse.from_entry(entry)

    async def deduct(
        self, db: AsyncSession, admin_id: str, user_id: str, amount: int, reason: str
    ) -> AdjustmentResponse:
        reason = validate_reason(reason)
        validate_amount(amount)
        await self._require_member(db, user_id)
        entry = await self._ledger.apply_entry(
            db,
            user_id,
            EntryType.DEBIT,
            amount,
            TransactionSource.ADMIN_DEBIT,
            description=reason,
            metadata={"deducted_by": admin_id},
        )
        logger.info("Admin %s deducted %d points from %s: %s", admin_id, amount, user_id, reason)
        return AdjustmentResponse.from_entry(entry)

    async def refund(
        self, db: AsyncSession, admin_id: str, entry_id: int, reason: str
    ) -> AdjustmentResponse:
        entry = await self._ledger.refund(db, entry_id, reason, admin_id)
        return AdjustmentResponse.from_entry(entry)
