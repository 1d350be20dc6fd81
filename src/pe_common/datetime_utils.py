"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def to_epoch_seconds(dt: datetime) -> int:
    """Whole seconds since the Unix epoch, as carried in QR payloads."""
    return int(dt.timestamp())


def from_epoch_seconds(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)
