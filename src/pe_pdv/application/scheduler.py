"""CheckoutExpirySweeper — periodic expire_stale in the app's event loop.

Expiry is already enforced lazily on every checkout read/write; the sweep
only makes checkout.expired events (and released stock) show up promptly for
checkouts nobody looks at again.
"""

import asyncio
import contextlib
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.pe_common.database import async_session_factory
from src.pe_pdv.application.service import CheckoutService

logger = logging.getLogger(__name__)


class CheckoutExpirySweeper:
    def __init__(
        self,
        service: CheckoutService | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        interval_seconds: float | None = None,
    ) -> None:
        self._service = service or CheckoutService()
        self._session_factory = session_factory
        self._interval = interval_seconds or settings.CHECKOUT_SWEEP_INTERVAL_SECONDS
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="checkout-expiry-sweeper")
        logger.info("Checkout expiry sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Checkout expiry sweeper stopped")

    async def run_once(self) -> int:
        async with self._session_factory() as db:
            result = await self._service.expire_stale(db)
        return result.expired

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Checkout expiry sweep failed")
            await asyncio.sleep(self._interval)
