"""Repository Protocol for pe_pdv.

Status changes are conditional updates: each names the statuses it may
leave, and returns None when the row was no longer in one of them.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_pdv.domain.models import Order, Pdv, PdvCheckout, PdvProduct


class PdvRepositoryProtocol(Protocol):
    async def get_pdv(self, db: AsyncSession, pdv_id: str) -> Pdv | None: ...

    async def get_products(
        self, db: AsyncSession, product_ids: list[str]
    ) -> list[PdvProduct]: ...

    async def reserve_stock(self, db: AsyncSession, product_id: str, quantity: int) -> bool:
        """False when stock - reserved < quantity."""
        ...

    async def release_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None: ...

    async def consume_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None: ...

    async def code_exists(self, db: AsyncSession, code: str) -> bool: ...

    async def insert_checkout(self, db: AsyncSession, checkout: PdvCheckout) -> PdvCheckout: ...

    async def get_checkout(
        self, db: AsyncSession, code: str, for_update: bool = False
    ) -> PdvCheckout | None: ...

    async def update_status(
        self,
        db: AsyncSession,
        code: str,
        from_statuses: tuple[str, ...],
        to_status: str,
        user_id: str | None = None,
        not_expired_at: datetime | None = None,
    ) -> PdvCheckout | None:
        """Move to `to_status`; binds `user_id` when given.

        With `not_expired_at`, also requires expires_at > not_expired_at.
        """
        ...

    async def mark_paid(
        self,
        db: AsyncSession,
        code: str,
        user_id: str,
        payment_method: str,
        points_used: int,
        money_paid_cents: int,
        cashback_earned: int,
        external_payment_id: str | None,
        order_id: str,
        balance_after: int | None,
        paid_at: datetime,
    ) -> PdvCheckout | None:
        """RESERVED → PAID. None when the checkout was not RESERVED."""
        ...

    async def insert_order(self, db: AsyncSession, order: Order) -> Order: ...

    async def list_stale(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[PdvCheckout]: ...
