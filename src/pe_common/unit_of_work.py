"""run_atomic — one locked, committed unit of ledger work.

The work callable runs under the per-user locks, then the session commits.
Any exception rolls the session back. ConcurrencyConflictError (and the
PostgreSQL contention SQLSTATEs) are the only failures retried here, with
bounded exponential backoff; everything else propagates unchanged.

The work callable is re-invoked on retry, so it must re-read whatever state
it depends on.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pe_common.database import is_retryable_db_error
from src.pe_common.errors import ConcurrencyConflictError
from src.pe_common.locks import UserLockTable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_ms: int) -> float:
    """Exponential backoff with jitter, in seconds."""
    delay_ms = base_ms * (2 ** (attempt - 1))
    return delay_ms * (0.5 + random.random() * 0.5) / 1000


async def run_atomic(
    db: AsyncSession,
    locks: UserLockTable,
    user_ids: Iterable[str],
    work: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
) -> T:
    attempts = max_attempts or settings.LEDGER_MAX_RETRIES
    ids = tuple(user_ids)
    for attempt in range(1, attempts + 1):
        async with locks.acquire(*ids):
            try:
                result = await work()
                await db.commit()
                return result
            except ConcurrencyConflictError:
                await db.rollback()
            except Exception as exc:
                await db.rollback()
                if not is_retryable_db_error(exc):
                    raise
        if attempt < attempts:
            delay = backoff_delay(attempt, settings.LEDGER_RETRY_BASE_DELAY_MS)
            logger.warning(
                "Ledger unit conflict for users=%s (attempt %d/%d), retrying in %.3fs",
                ids, attempt, attempts, delay,
            )
            await asyncio.sleep(delay)

    logger.error("Ledger unit gave up after %d attempts for users=%s", attempts, ids)
    raise ConcurrencyConflictError()
