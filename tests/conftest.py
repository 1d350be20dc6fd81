"""Shared test fixtures."""

import os

# Settings are read at import time; JWT_SECRET has no default
os.environ.setdefault("JWT_SECRET", "unit-test-secret-not-for-production")
os.environ.setdefault("CHECKOUT_SWEEP_ENABLED", "false")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.main import app  # noqa: E402
from src.pe_common.locks import UserLockTable  # noqa: E402
from src.pe_notify.publisher import QueuePublisher  # noqa: E402
from src.pe_points.application.service import LedgerService  # noqa: E402
from tests.fakes import FakeClock, FakePointsRepository, FakeSession  # noqa: E402


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> QueuePublisher:
    return QueuePublisher()


@pytest.fixture
def points_repo() -> FakePointsRepository:
    return FakePointsRepository()


@pytest.fixture
def ledger(points_repo: FakePointsRepository, publisher: QueuePublisher) -> LedgerService:
    return LedgerService(repo=points_repo, locks=UserLockTable(), publisher=publisher)
