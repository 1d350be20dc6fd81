"""CheckinService — QR issuance and check-in redemption.

Redemption order of checks: event exists, number in 1..N, event ONGOING and
not paused, window OPEN, token signs the window plus the payload timestamp,
that timestamp fresh, not already redeemed. On success the record insert,
the ledger credit and the record/entry link commit together under the user's
lock; events go out after the commit.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pe_checkin.application.schemas import (
    CheckinProgress,
    CheckinResponse,
    QrPayloadResponse,
)
from src.pe_checkin.domain.models import CheckinRecord, CheckinWindow, Event, QrPayload
from src.pe_checkin.domain.repository import CheckinRepositoryProtocol
from src.pe_checkin.domain.windows import (
    build_window,
    current_window,
    sign_window_token,
    verify_window_token,
    window_state,
)
from src.pe_checkin.infrastructure.persistence import CheckinRepository
from src.pe_common.datetime_utils import to_epoch_seconds, utc_now
from src.pe_common.enums import CheckinWindowState, EntryType, EventStatus, TransactionSource
from src.pe_common.errors import (
    AlreadyCheckedInError,
    EventNotFoundError,
    TimestampSkewError,
    WindowClosedError,
)
from src.pe_common.unit_of_work import run_atomic
from src.pe_notify.domain.events import (
    CHECKIN_CONFIRMED,
    CHECKIN_COUNTER,
    DomainEvent,
    balance_changed,
    event_target,
    user_target,
)
from src.pe_notify.publisher import PublisherProtocol, get_publisher, publish_all
from src.pe_points.application.service import LedgerService
from src.pe_points.domain.models import LedgerEntry

logger = logging.getLogger(__name__)


def _ensure_accepting(event: Event) -> None:
    if event.status == EventStatus.CANCELLED.value:
        raise WindowClosedError("Event is cancelled")
    if event.status == EventStatus.ENDED.value:
        raise WindowClosedError("Event has ended")
    if event.status != EventStatus.ONGOING.value:
        raise WindowClosedError("Event has not started")
    if event.is_paused:
        raise WindowClosedError("Check-ins are temporarily paused")


class CheckinService:
    def __init__(
        self,
        repo: CheckinRepositoryProtocol | None = None,
        ledger: LedgerService | None = None,
        publisher: PublisherProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: CheckinRepositoryProtocol = repo or CheckinRepository()
        self._ledger = ledger or LedgerService()
        self._publisher = publisher if publisher is not None else get_publisher()
        self._clock = clock

    async def _load_event(self, db: AsyncSession, event_id: str) -> Event:
        event = await self._repo.get_event(db, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def _payload_for(self, event: Event, window: CheckinWindow, now: datetime) -> QrPayload:
        max_age = timedelta(seconds=settings.CHECKIN_QR_MAX_AGE_SECONDS)
        timestamp = to_epoch_seconds(now)
        return QrPayload(
            event_id=event.id,
            checkin_number=window.checkin_number,
            security_token=sign_window_token(event.qr_secret, window, timestamp),
            timestamp=timestamp,
            expires_at=to_epoch_seconds(min(window.closes_at, now + max_age)),
        )

    # ------------------------------------------------------------------
    # Issuance (venue display)
    # ------------------------------------------------------------------

    async def issue_qr_payload(
        self, db: AsyncSession, event_id: str, checkin_number: int
    ) -> QrPayloadResponse:
        event = await self._load_event(db, event_id)
        window = build_window(event, checkin_number)
        _ensure_accepting(event)
        now = self._clock()
        state = window_state(window, now)
        if state != CheckinWindowState.OPEN:
            raise WindowClosedError(f"Check-in {checkin_number} window is {state.value}")
        return QrPayloadResponse.from_payload(self._payload_for(event, window, now))

    async def current_qr_payload(
        self, db: AsyncSession, event_id: str
    ) -> QrPayloadResponse | None:
        event = await self._load_event(db, event_id)
        if not event.accepts_checkins:
            return None
        now = self._clock()
        window = current_window(event, now)
        if window is None:
            return None
        return QrPayloadResponse.from_payload(self._payload_for(event, window, now))

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def checkin(
        self,
        db: AsyncSession,
        user_id: str,
        event_id: str,
        checkin_number: int,
        security_token: str,
        timestamp: int,
    ) -> CheckinResponse:
        event = await self._load_event(db, event_id)
        window = build_window(event, checkin_number)
        _ensure_accepting(event)

        now = self._clock()
        if window_state(window, now) != CheckinWindowState.OPEN:
            raise WindowClosedError()
        # A mismatch covers a tampered QR, a re-stamped one and one from a retired window
        if not verify_window_token(event.qr_secret, window, timestamp, security_token):
            raise WindowClosedError("Invalid or expired QR code")

        age = to_epoch_seconds(now) - timestamp
        if age > settings.CHECKIN_QR_MAX_AGE_SECONDS:
            raise TimestampSkewError(settings.CHECKIN_QR_MAX_AGE_SECONDS)
        if -age > settings.CHECKIN_CLOCK_SKEW_SECONDS:
            raise TimestampSkewError(settings.CHECKIN_CLOCK_SKEW_SECONDS)

        return await self._redeem(db, event, window, user_id, is_manual=False, created_by=None)

    async def manual_checkin(
        self,
        db: AsyncSession,
        admin_id: str,
        event_id: str,
        user_id: str,
        checkin_number: int,
    ) -> CheckinResponse:
        """Admin console check-in: skips window and token, keeps range and uniqueness."""
        event = await self._load_event(db, event_id)
        window = build_window(event, checkin_number)
        response = await self._redeem(
            db, event, window, user_id, is_manual=True, created_by=admin_id
        )
        logger.info(
            "Manual check-in %d for user=%s on event=%s by admin=%s",
            checkin_number, user_id, event_id, admin_id,
        )
        return response

    async def _redeem(
        self,
        db: AsyncSession,
        event: Event,
        window: CheckinWindow,
        user_id: str,
        is_manual: bool,
        created_by: str | None,
    ) -> CheckinResponse:
        n = window.checkin_number
        if await self._repo.get_record(db, event.id, user_id, n) is not None:
            raise AlreadyCheckedInError(n)

        points = window.points_awarded
        metadata: dict[str, object] = {"event_id": event.id, "checkin_number": n}
        if is_manual:
            metadata["manual"] = True

        async def _work() -> tuple[CheckinRecord, LedgerEntry | None]:
            await self._ledger.repo.lock_balances(db, [user_id])
            record = await self._repo.insert_record(
                db, event.id, user_id, n, points, is_manual, created_by
            )
            if record is None:
                raise AlreadyCheckedInError(n)
            entry = None
            if points > 0:
                entry = await self._ledger.post_entry(
                    db,
                    user_id,
                    EntryType.CREDIT,
                    points,
                    TransactionSource.EVENT_CHECKIN,
                    source_id=str(record.id),
                    description=f"Check-in {n} - {event.title}",
                    metadata=metadata,
                )
                await self._repo.link_ledger_entry(db, record.id, entry.id)
                record.ledger_entry_id = entry.id
            return record, entry

        record, entry = await run_atomic(db, self._ledger.locks, [user_id], _work)

        completed = len(await self._repo.list_user_checkin_numbers(db, event.id, user_id))
        total, unique_users = await self._repo.count_checkins(db, event.id)

        events: list[DomainEvent] = []
        if entry is not None:
            events.append(balance_changed(user_id, entry.balance_after))
        events.append(
            DomainEvent(
                CHECKIN_CONFIRMED,
                {"event_id": event.id, "checkin_number": n, "user_id": user_id},
                [event_target(event.id), user_target(user_id)],
            )
        )
        events.append(
            DomainEvent(
                CHECKIN_COUNTER,
                {"event_id": event.id, "total_checkins": total, "unique_users": unique_users},
                [event_target(event.id)],
            )
        )
        await publish_all(self._publisher, events)

        return CheckinResponse(
            checkin_id=record.id,
            event_id=event.id,
            checkin_number=n,
            points_awarded=points,
            balance_after=entry.balance_after if entry else None,
            is_manual=is_manual,
            progress=CheckinProgress.of(completed, event.checkins_count),
        )
