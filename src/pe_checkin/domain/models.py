"""Domain models for pe_checkin — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.pe_common.enums import EventStatus


@dataclass
class Event:
    id: str
    title: str
    status: str                      # EventStatus value
    start_at: datetime
    end_at: datetime
    checkins_count: int              # N
    checkin_interval_minutes: int
    points_total: int
    qr_secret: str
    is_paused: bool = False

    @property
    def points_per_checkin(self) -> int:
        if self.checkins_count <= 0:
            return 0
        return self.points_total // self.checkins_count

    @property
    def accepts_checkins(self) -> bool:
        return not self.is_paused and self.status == EventStatus.ONGOING.value


@dataclass(frozen=True)
class CheckinWindow:
    """One redeemable check-in number. Derived from the schedule, never stored."""

    event_id: str
    checkin_number: int
    opens_at: datetime
    closes_at: datetime
    points_awarded: int


@dataclass
class CheckinRecord:
    id: int
    event_id: str
    user_id: str
    checkin_number: int
    points_awarded: int
    ledger_entry_id: int | None = None
    is_manual: bool = False
    created_by: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class QrPayload:
    event_id: str
    checkin_number: int
    security_token: str
    timestamp: int                   # epoch seconds, when the display rendered it
    expires_at: int                  # epoch seconds
    type: str = "event_checkin"
