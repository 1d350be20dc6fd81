"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.pe_admin.api.router import router as admin_router
from src.pe_checkin.api.router import router as checkin_router
from src.pe_common.database import engine
from src.pe_common.errors import AppError
from src.pe_common.redis_client import close_redis, ping_redis
from src.pe_common.response import error_response
from src.pe_gateway.middleware.request_log import RequestLogMiddleware
from src.pe_notify.publisher import QueuePublisher, get_publisher
from src.pe_notify.relay import OutboxRelay
from src.pe_pdv.api.router import router as pdv_router
from src.pe_pdv.application.scheduler import CheckoutExpirySweeper
from src.pe_points.api.router import router as points_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

_sweeper = CheckoutExpirySweeper()


def build_relay() -> OutboxRelay | None:
    """The outbox relay, when notifications are buffered in-process."""
    publisher = get_publisher()
    if isinstance(publisher, QueuePublisher):
        return OutboxRelay(publisher)
    return None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start outbox relay and sweeper.

    Shutdown: stop sweeper, flush relay, dispose.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await ping_redis()
    relay = build_relay()
    if relay is not None:
        relay.start()
    if settings.CHECKOUT_SWEEP_ENABLED:
        _sweeper.start()
    yield
    await _sweeper.stop()
    if relay is not None:
        await relay.stop()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(points_router, prefix="/api/v1")
app.include_router(checkin_router, prefix="/api/v1")
app.include_router(pdv_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
