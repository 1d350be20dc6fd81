"""Integration-test fixtures.

Pre-condition: a migrated PostgreSQL (alembic upgrade head) reachable at
DATABASE_URL, and RUN_INTEGRATION=1. Without it the directory is skipped.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid across
the entire test session.
"""

import os
import uuid
from dataclasses import dataclass

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

if os.environ.get("RUN_INTEGRATION") != "1":
    collect_ignore_glob = ["test_*.py"]

from src.main import app  # noqa: E402
from src.pe_common.database import engine  # noqa: E402


@dataclass(frozen=True)
class Seed:
    alice: str
    bob: str
    pdv_id: str
    product_id: str


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def seed() -> Seed:
    """Fresh members, one PDV and one product per test session."""
    run = uuid.uuid4().hex[:8]
    s = Seed(
        alice=f"alice_{run}",
        bob=f"bob_{run}",
        pdv_id=f"pdv_{run}",
        product_id=f"beer_{run}",
    )
    async with engine.begin() as conn:
        await conn.execute(
            text("INSERT INTO users (id, name) VALUES (:a, 'Alice'), (:b, 'Bob')"),
            {"a": s.alice, "b": s.bob},
        )
        await conn.execute(
            text(
                "INSERT INTO pdvs (id, name, cashback_bps) VALUES (:id, 'Main Bar', 1000)"
            ),
            {"id": s.pdv_id},
        )
        await conn.execute(
            text("""
                INSERT INTO pdv_products (id, pdv_id, name, price_points, price_money_cents, stock)
                VALUES (:id, :pdv_id, 'Beer', 100, 1000, 5)
            """),
            {"id": s.product_id, "pdv_id": s.pdv_id},
        )
    return s
