"""Unit tests for check-in window math and window tokens."""

from datetime import UTC, datetime, timedelta

import pytest

from src.pe_checkin.domain.models import Event
from src.pe_checkin.domain.windows import (
    build_window,
    current_window,
    sign_window_token,
    verify_window_token,
    window_state,
)
from src.pe_common.enums import CheckinWindowState
from src.pe_common.errors import CheckinWindowNotFoundError

START = datetime(2026, 5, 1, 10, 0, tzinfo=UTC)


def _make_event(**overrides: object) -> Event:
    defaults: dict[str, object] = {
        "id": "ev-1",
        "title": "Launch Night",
        "status": "ONGOING",
        "start_at": START,
        "end_at": START + timedelta(hours=2),
        "checkins_count": 3,
        "checkin_interval_minutes": 30,
        "points_total": 100,
        "qr_secret": "s3cret",
    }
    defaults.update(overrides)
    return Event(**defaults)  # type: ignore[arg-type]


class TestBuildWindow:
    def test_first_window(self) -> None:
        w = build_window(_make_event(), 1)
        assert w.opens_at == START
        assert w.closes_at == START + timedelta(minutes=30)
        assert w.points_awarded == 33

    def test_middle_window(self) -> None:
        w = build_window(_make_event(), 2)
        assert w.opens_at == START + timedelta(minutes=30)
        assert w.closes_at == START + timedelta(minutes=60)

    def test_last_window_extends_to_event_end(self) -> None:
        w = build_window(_make_event(), 3)
        assert w.opens_at == START + timedelta(minutes=60)
        assert w.closes_at == START + timedelta(hours=2)

    def test_last_window_not_shortened_when_event_ends_early(self) -> None:
        w = build_window(_make_event(end_at=START + timedelta(minutes=70)), 3)
        assert w.closes_at == START + timedelta(minutes=90)

    @pytest.mark.parametrize("n", [0, 4, -1])
    def test_out_of_range(self, n: int) -> None:
        with pytest.raises(CheckinWindowNotFoundError):
            build_window(_make_event(), n)


class TestWindowState:
    def test_transitions(self) -> None:
        w = build_window(_make_event(), 2)
        assert window_state(w, w.opens_at - timedelta(seconds=1)) == CheckinWindowState.PENDING
        assert window_state(w, w.opens_at) == CheckinWindowState.OPEN
        assert window_state(w, w.closes_at - timedelta(seconds=1)) == CheckinWindowState.OPEN
        assert window_state(w, w.closes_at) == CheckinWindowState.CLOSED

    def test_at_most_one_window_open(self) -> None:
        event = _make_event()
        windows = [build_window(event, n) for n in (1, 2, 3)]
        t = START - timedelta(minutes=5)
        while t < START + timedelta(hours=2, minutes=5):
            open_count = sum(window_state(w, t) == CheckinWindowState.OPEN for w in windows)
            assert open_count <= 1
            t += timedelta(minutes=1)


class TestCurrentWindow:
    def test_before_start(self) -> None:
        assert current_window(_make_event(), START - timedelta(seconds=1)) is None

    def test_inside_second_window(self) -> None:
        w = current_window(_make_event(), START + timedelta(minutes=45))
        assert w is not None
        assert w.checkin_number == 2

    def test_boundary_belongs_to_next_window(self) -> None:
        w = current_window(_make_event(), START + timedelta(minutes=30))
        assert w is not None
        assert w.checkin_number == 2

    def test_extended_last_window(self) -> None:
        w = current_window(_make_event(), START + timedelta(minutes=105))
        assert w is not None
        assert w.checkin_number == 3

    def test_after_end(self) -> None:
        assert current_window(_make_event(), START + timedelta(hours=2)) is None


TS = int(START.timestamp()) + 60


class TestWindowToken:
    def test_sign_is_deterministic(self) -> None:
        w = build_window(_make_event(), 1)
        assert sign_window_token("s3cret", w, TS) == sign_window_token("s3cret", w, TS)
        assert len(sign_window_token("s3cret", w, TS)) == 64

    def test_verify_accepts_own_token(self) -> None:
        w = build_window(_make_event(), 1)
        assert verify_window_token("s3cret", w, TS, sign_window_token("s3cret", w, TS))

    def test_token_is_bound_to_window(self) -> None:
        event = _make_event()
        token_1 = sign_window_token("s3cret", build_window(event, 1), TS)
        assert not verify_window_token("s3cret", build_window(event, 2), TS, token_1)

    def test_token_is_bound_to_secret(self) -> None:
        w = build_window(_make_event(), 1)
        assert not verify_window_token("other", w, TS, sign_window_token("s3cret", w, TS))

    def test_token_is_bound_to_timestamp(self) -> None:
        w = build_window(_make_event(), 1)
        token = sign_window_token("s3cret", w, TS)
        assert not verify_window_token("s3cret", w, TS + 90, token)

    def test_empty_token_rejected(self) -> None:
        assert not verify_window_token("s3cret", build_window(_make_event(), 1), TS, "")
