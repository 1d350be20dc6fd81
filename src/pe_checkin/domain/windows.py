"""Check-in windows and their security tokens.

Window k (1..N) of an event covers [start + (k-1)*interval, start + k*interval).
The last window stays open until the event's end_at when that is later.
Windows never overlap, so at most one is OPEN at any instant.

A window's state is a pure function of the clock: PENDING before opens_at,
OPEN inside the interval, CLOSED afterwards. The token is
HMAC-SHA256(qr_secret, "eventId|k|opens_at_epoch|timestamp") over the
timestamp the display rendered, so a captured QR cannot be re-stamped to
outlive its freshness limit. A token for window k can only verify while
window k is OPEN, so a QR from the previous window is dead the instant the
next one opens.
"""

import hashlib
import hmac
from datetime import datetime, timedelta

from src.pe_checkin.domain.models import CheckinWindow, Event
from src.pe_common.datetime_utils import to_epoch_seconds
from src.pe_common.enums import CheckinWindowState
from src.pe_common.errors import CheckinWindowNotFoundError


def build_window(event: Event, checkin_number: int) -> CheckinWindow:
    if not 1 <= checkin_number <= event.checkins_count:
        raise CheckinWindowNotFoundError(event.id, checkin_number)
    interval = timedelta(minutes=event.checkin_interval_minutes)
    opens_at = event.start_at + interval * (checkin_number - 1)
    closes_at = opens_at + interval
    if checkin_number == event.checkins_count and event.end_at > closes_at:
        closes_at = event.end_at
    return CheckinWindow(
        event_id=event.id,
        checkin_number=checkin_number,
        opens_at=opens_at,
        closes_at=closes_at,
        points_awarded=event.points_per_checkin,
    )


def window_state(window: CheckinWindow, now: datetime) -> CheckinWindowState:
    if now < window.opens_at:
        return CheckinWindowState.PENDING
    if now < window.closes_at:
        return CheckinWindowState.OPEN
    return CheckinWindowState.CLOSED


def current_window(event: Event, now: datetime) -> CheckinWindow | None:
    """The window OPEN at `now`, or None before the first / after the last."""
    if event.checkins_count <= 0 or event.checkin_interval_minutes <= 0:
        return None
    elapsed = now - event.start_at
    if elapsed < timedelta(0):
        return None
    k = int(elapsed // timedelta(minutes=event.checkin_interval_minutes)) + 1
    window = build_window(event, min(k, event.checkins_count))
    if window_state(window, now) != CheckinWindowState.OPEN:
        return None
    return window


def sign_window_token(secret: str, window: CheckinWindow, timestamp: int) -> str:
    message = (
        f"{window.event_id}|{window.checkin_number}|"
        f"{to_epoch_seconds(window.opens_at)}|{timestamp}"
    )
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_window_token(
    secret: str, window: CheckinWindow, timestamp: int, token: str
) -> bool:
    return hmac.compare_digest(sign_window_token(secret, window, timestamp), token or "")
