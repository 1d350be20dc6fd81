"""TransferService — peer-to-peer point transfers.

A transfer is two ledger entries sharing one snowflake transfer id as
source_id: TRANSFER_OUT on the sender, TRANSFER_IN on the recipient. Both
users are locked in sorted order, so opposite-direction transfers cannot
deadlock. Either both entries commit or neither does.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.datetime_utils import utc_now
from src.pe_common.enums import EntryType, TransactionSource
from src.pe_common.errors import MemberNotFoundError, SelfTransferError
from src.pe_common.id_generator import generate_id
from src.pe_common.unit_of_work import run_atomic
from src.pe_notify.domain.events import balance_changed
from src.pe_notify.publisher import PublisherProtocol, get_publisher, publish_all
from src.pe_points.application.schemas import (
    RecentRecipientItem,
    RecipientInfo,
    TransferResponse,
)
from src.pe_points.application.service import LedgerService, validate_amount
from src.pe_points.domain.models import LedgerEntry

logger = logging.getLogger(__name__)


class TransferService:
    def __init__(
        self,
        ledger: LedgerService | None = None,
        publisher: PublisherProtocol | None = None,
    ) -> None:
        self._ledger = ledger or LedgerService()
        self._repo = self._ledger.repo
        self._publisher = publisher if publisher is not None else get_publisher()

    async def transfer(
        self,
        db: AsyncSession,
        sender_id: str,
        recipient_id: str,
        amount: int,
        message: str | None = None,
    ) -> TransferResponse:
        if sender_id == recipient_id:
            raise SelfTransferError()
        validate_amount(amount)
        recipient = await self._repo.get_member(db, recipient_id)
        if recipient is None or not recipient.is_active:
            raise MemberNotFoundError(recipient_id)

        transfer_id = generate_id()

        async def _work() -> tuple[LedgerEntry, LedgerEntry]:
            await self._repo.lock_balances(db, [sender_id, recipient_id])
            out_entry = await self._ledger.post_entry(
                db,
                sender_id,
                EntryType.DEBIT,
                amount,
                TransactionSource.TRANSFER_OUT,
                source_id=transfer_id,
                description=message or f"Transfer to {recipient.name}",
                metadata={"recipient_id": recipient_id},
            )
            in_entry = await self._ledger.post_entry(
                db,
                recipient_id,
                EntryType.CREDIT,
                amount,
                TransactionSource.TRANSFER_IN,
                source_id=transfer_id,
                description=message or "Transfer received",
                metadata={"sender_id": sender_id},
            )
            await self._repo.touch_recipient(db, sender_id, recipient_id)
            return out_entry, in_entry

        out_entry, in_entry = await run_atomic(
            db, self._ledger.locks, [sender_id, recipient_id], _work
        )
        logger.info(
            "Transfer %s: %d points %s -> %s", transfer_id, amount, sender_id, recipient_id
        )
        await publish_all(
            self._publisher,
            [
                balance_changed(sender_id, out_entry.balance_after),
                balance_changed(recipient_id, in_entry.balance_after),
            ],
        )
        created_at = out_entry.created_at or utc_now()
        return TransferResponse(
            transaction_id=transfer_id,
            amount=amount,
            recipient=RecipientInfo.from_member(recipient),
            sender_balance_after=out_entry.balance_after,
            created_at=created_at.isoformat(),
        )

    async def list_recent_recipients(
        self, db: AsyncSession, user_id: str, limit: int = 5
    ) -> list[RecentRecipientItem]:
        recipients = await self._repo.list_recent_recipients(db, user_id, limit)
        return [RecentRecipientItem.from_recipient(r) for r in recipients]
