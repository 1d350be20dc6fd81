"""CheckoutService — PDV checkout state machine.

Expiry is lazy: every read or write of a checkout first moves it to EXPIRED
if expires_at has passed, releasing its reserved stock. The sweeper in
scheduler.py does the same for checkouts nobody touches.

Payment runs under the payer's lock with the checkout row locked FOR UPDATE,
so PAID happens exactly once. A replayed payment returns the stored
settlement instead of debiting again.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pe_common.datetime_utils import utc_now
from src.pe_common.enums import CheckoutStatus, EntryType, PaymentMethod, TransactionSource
from src.pe_common.errors import (
    AlreadyPaidError,
    CheckoutExpiredError,
    CheckoutNotFoundError,
    CheckoutStateError,
    ConcurrencyConflictError,
    InternalError,
    InvalidAmountError,
    OwnershipMismatchError,
    PdvNotActiveError,
    PdvNotFoundError,
    ProductUnavailableError,
)
from src.pe_common.id_generator import generate_checkout_code, generate_id
from src.pe_common.money import calc_cashback, money_cashback
from src.pe_common.unit_of_work import run_atomic
from src.pe_notify.domain.events import (
    CHECKOUT_CANCELLED,
    CHECKOUT_CREATED,
    CHECKOUT_EXPIRED,
    CHECKOUT_PAID,
    CHECKOUT_RESERVED,
    DomainEvent,
    balance_changed,
    pdv_target,
    user_target,
)
from src.pe_notify.publisher import PublisherProtocol, get_publisher, publish_all
from src.pe_pdv.application.schemas import (
    BindResponse,
    CheckoutResponse,
    ExpireStaleResponse,
    PaymentResponse,
)
from src.pe_pdv.domain.models import LIVE_STATUSES, CheckoutItem, Order, Pdv, PdvCheckout
from src.pe_pdv.domain.repository import PdvRepositoryProtocol
from src.pe_pdv.infrastructure.persistence import PdvRepository
from src.pe_points.application.service import LedgerService

logger = logging.getLogger(__name__)

_CODE_ATTEMPTS = 10


def _checkout_event(topic: str, c: PdvCheckout) -> DomainEvent:
    return DomainEvent(
        topic,
        {
            "code": c.code,
            "pdv_id": c.pdv_id,
            "status": c.status,
            "total_points": c.total_points,
            "total_money_cents": c.total_money_cents,
        },
        [pdv_target(c.pdv_id)],
    )


def _raise_if_not_reserved_by(c: PdvCheckout, user_id: str) -> None:
    if c.status == CheckoutStatus.PAID.value:
        raise AlreadyPaidError(c.code)
    if c.status == CheckoutStatus.EXPIRED.value:
        raise CheckoutExpiredError(c.code)
    if c.status != CheckoutStatus.RESERVED.value:
        raise CheckoutStateError(c.code, c.status)
    if c.user_id != user_id:
        raise OwnershipMismatchError(c.code)


class CheckoutService:
    def __init__(
        self,
        repo: PdvRepositoryProtocol | None = None,
        ledger: LedgerService | None = None,
        publisher: PublisherProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: PdvRepositoryProtocol = repo or PdvRepository()
        self._ledger = ledger or LedgerService()
        self._publisher = publisher if publisher is not None else get_publisher()
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, db: AsyncSession, code: str) -> PdvCheckout:
        checkout = await self._repo.get_checkout(db, code)
        if checkout is None:
            raise CheckoutNotFoundError(code)
        return checkout

    async def _require_pdv(self, db: AsyncSession, pdv_id: str) -> Pdv:
        pdv = await self._repo.get_pdv(db, pdv_id)
        if pdv is None:
            raise PdvNotFoundError(pdv_id)
        return pdv

    async def _expire_one(self, db: AsyncSession, code: str) -> PdvCheckout | None:
        async def _work() -> PdvCheckout | None:
            expired = await self._repo.update_status(
                db, code, LIVE_STATUSES, CheckoutStatus.EXPIRED.value
            )
            if expired is not None:
                for item in expired.items:
                    await self._repo.release_stock(db, item.product_id, item.quantity)
            return expired

        expired = await run_atomic(db, self._ledger.locks, [], _work)
        if expired is not None:
            logger.info("Checkout %s expired (pdv=%s)", code, expired.pdv_id)
            await publish_all(self._publisher, [_checkout_event(CHECKOUT_EXPIRED, expired)])
        return expired

    async def _expire_if_stale(self, db: AsyncSession, checkout: PdvCheckout) -> PdvCheckout:
        if not checkout.is_past_expiry(self._clock()):
            return checkout
        expired = await self._expire_one(db, checkout.code)
        return expired if expired is not None else await self._load(db, checkout.code)

    async def _settle(
        self,
        db: AsyncSession,
        checkout: PdvCheckout,
        user_id: str,
        pdv: Pdv,
        method: PaymentMethod,
        points_used: int,
        money_paid_cents: int,
        cashback: int,
        external_payment_id: str | None,
    ) -> PdvCheckout:
        """Debit, consume stock, create the order, credit cashback, mark PAID."""
        balance_after: int | None = None
        if points_used > 0:
            debit = await self._ledger.post_entry(
                db,
                user_id,
                EntryType.DEBIT,
                points_used,
                TransactionSource.PDV_PURCHASE,
                source_id=checkout.code,
                description=f"Purchase at {pdv.name}",
                metadata={"pdv_id": pdv.id, "checkout_code": checkout.code},
            )
            balance_after = debit.balance_after

        for item in checkout.items:
            await self._repo.consume_stock(db, item.product_id, item.quantity)

        order = await self._repo.insert_order(
            db,
            Order(
                id=generate_id(),
                user_id=user_id,
                pdv_id=checkout.pdv_id,
                checkout_code=checkout.code,
                items=checkout.items,
                payment_method=method.value,
                points_used=points_used,
                money_paid_cents=money_paid_cents,
                cashback_earned=cashback,
                external_payment_id=external_payment_id,
            ),
        )

        if cashback > 0:
            credit = await self._ledger.post_entry(
                db,
                user_id,
                EntryType.CREDIT,
                cashback,
                TransactionSource.CASHBACK,
                source_id=checkout.code,
                description=f"Cashback from {pdv.name}",
                metadata={
                    "pdv_id": pdv.id,
                    "checkout_code": checkout.code,
                    "cashback_bps": pdv.cashback_bps,
                },
            )
            balance_after = credit.balance_after

        if balance_after is None:
            bal = await self._ledger.repo.get_balance(db, user_id)
            balance_after = bal.balance if bal else 0

        paid = await self._repo.mark_paid(
            db,
            checkout.code,
            user_id=user_id,
            payment_method=method.value,
            points_used=points_used,
            money_paid_cents=money_paid_cents,
            cashback_earned=cashback,
            external_payment_id=external_payment_id,
            order_id=order.id,
            balance_after=balance_after,
            paid_at=self._clock(),
        )
        if paid is None:
            raise ConcurrencyConflictError(f"Checkout {checkout.code} changed during payment")
        return paid

    async def _publish_paid(self, paid: PdvCheckout) -> None:
        user_id = paid.user_id or ""
        events = [
            DomainEvent(
                CHECKOUT_PAID,
                {"code": paid.code, "order_id": paid.order_id},
                [pdv_target(paid.pdv_id), user_target(user_id)],
            )
        ]
        if paid.balance_after is not None:
            events.insert(0, balance_changed(user_id, paid.balance_after))
        await publish_all(self._publisher, events)

    # ------------------------------------------------------------------
    # Terminal side
    # ------------------------------------------------------------------

    async def create_checkout(
        self, db: AsyncSession, pdv_id: str, items: list[tuple[str, int]]
    ) -> CheckoutResponse:
        pdv = await self._require_pdv(db, pdv_id)
        if not pdv.is_active:
            raise PdvNotActiveError(pdv_id)

        wanted: dict[str, int] = {}
        for product_id, quantity in items:
            if quantity <= 0:
                raise InvalidAmountError(quantity)
            wanted[product_id] = wanted.get(product_id, 0) + quantity
        if not wanted:
            raise ProductUnavailableError("checkout has no items")

        products = {p.id: p for p in await self._repo.get_products(db, list(wanted))}
        lines: list[CheckoutItem] = []
        for product_id, quantity in wanted.items():
            product = products.get(product_id)
            if product is None or product.pdv_id != pdv_id or not product.is_active:
                raise ProductUnavailableError(f"{product_id} is not sold at this PDV")
            if product.available < quantity:
                raise ProductUnavailableError(f"insufficient stock for {product.name}")
            lines.append(
                CheckoutItem(
                    product_id=product.id,
                    name=product.name,
                    quantity=quantity,
                    unit_price_points=product.price_points,
                    unit_price_money_cents=product.price_money_cents,
                )
            )

        for _ in range(_CODE_ATTEMPTS):
            code = generate_checkout_code()
            if not await self._repo.code_exists(db, code):
                break
        else:
            raise InternalError("Could not allocate a unique checkout code")

        checkout = PdvCheckout(
            code=code,
            pdv_id=pdv_id,
            items=lines,
            total_points=sum(i.total_points for i in lines),
            total_money_cents=sum(i.total_money_cents for i in lines),
            status=CheckoutStatus.OPEN.value,
            expires_at=self._clock() + timedelta(minutes=settings.CHECKOUT_EXPIRATION_MINUTES),
        )

        async def _work() -> PdvCheckout:
            for line in lines:
                if not await self._repo.reserve_stock(db, line.product_id, line.quantity):
                    raise ProductUnavailableError(f"insufficient stock for {line.name}")
            return await self._repo.insert_checkout(db, checkout)

        created = await run_atomic(db, self._ledger.locks, [], _work)
        logger.info(
            "Checkout %s created for pdv=%s (%d points / %d cents)",
            created.code, pdv_id, created.total_points, created.total_money_cents,
        )
        await publish_all(self._publisher, [_checkout_event(CHECKOUT_CREATED, created)])
        return CheckoutResponse.from_checkout(created)

    async def get_checkout(self, db: AsyncSession, code: str) -> CheckoutResponse:
        checkout = await self._expire_if_stale(db, await self._load(db, code))
        return CheckoutResponse.from_checkout(checkout)

    async def cancel_checkout(
        self, db: AsyncSession, code: str, user_id: str | None = None
    ) -> CheckoutResponse:
        """Cancel an OPEN or RESERVED checkout. `user_id` restricts it to the bound member."""
        checkout = await self._load(db, code)
        if checkout.status == CheckoutStatus.PAID.value:
            raise AlreadyPaidError(code)
        if user_id is not None and checkout.user_id != user_id:
            raise OwnershipMismatchError(code)
        checkout = await self._expire_if_stale(db, checkout)
        if checkout.status == CheckoutStatus.CANCELLED.value:
            return CheckoutResponse.from_checkout(checkout)
        if checkout.status == CheckoutStatus.EXPIRED.value:
            raise CheckoutExpiredError(code)

        async def _work() -> PdvCheckout | None:
            cancelled = await self._repo.update_status(
                db, code, LIVE_STATUSES, CheckoutStatus.CANCELLED.value
            )
            if cancelled is not None:
                for item in cancelled.items:
                    await self._repo.release_stock(db, item.product_id, item.quantity)
            return cancelled

        cancelled = await run_atomic(db, self._ledger.locks, [], _work)
        if cancelled is None:
            current = await self._load(db, code)
            if current.status == CheckoutStatus.PAID.value:
                raise AlreadyPaidError(code)
            raise CheckoutStateError(code, current.status)

        logger.info("Checkout %s cancelled", code)
        await publish_all(self._publisher, [_checkout_event(CHECKOUT_CANCELLED, cancelled)])
        return CheckoutResponse.from_checkout(cancelled)

    async def expire_stale(self, db: AsyncSession, limit: int = 500) -> ExpireStaleResponse:
        """Expire every live checkout past its deadline. Never touches the ledger."""
        stale = await self._repo.list_stale(db, self._clock(), limit)
        codes: list[str] = []
        for checkout in stale:
            if await self._expire_one(db, checkout.code) is not None:
                codes.append(checkout.code)
        if codes:
            logger.info("Expired %d stale checkouts", len(codes))
        return ExpireStaleResponse(expired=len(codes), codes=codes)

    # ------------------------------------------------------------------
    # Member side
    # ------------------------------------------------------------------

    async def bind_user(self, db: AsyncSession, code: str, user_id: str) -> BindResponse:
        checkout = await self._expire_if_stale(db, await self._load(db, code))

        if checkout.status == CheckoutStatus.OPEN.value:
            now = self._clock()

            async def _work() -> PdvCheckout | None:
                return await self._repo.update_status(
                    db,
                    code,
                    (CheckoutStatus.OPEN.value,),
                    CheckoutStatus.RESERVED.value,
                    user_id=user_id,
                    not_expired_at=now,
                )

            bound = await run_atomic(db, self._ledger.locks, [], _work)
            if bound is not None:
                logger.info("Checkout %s reserved by user=%s", code, user_id)
                await publish_all(self._publisher, [_checkout_event(CHECKOUT_RESERVED, bound)])
                checkout = bound
            else:
                checkout = await self._expire_if_stale(db, await self._load(db, code))
                if checkout.status == CheckoutStatus.OPEN.value:
                    raise ConcurrencyConflictError()

        # Re-binding by the same member is a no-op
        _raise_if_not_reserved_by(checkout, user_id)

        balance = await self._ledger.get_balance(db, user_id)
        return BindResponse(
            checkout=CheckoutResponse.from_checkout(checkout),
            balance=balance.balance,
            can_pay_with_points=balance.balance >= checkout.total_points,
        )

    async def pay_with_points(
        self, db: AsyncSession, code: str, user_id: str
    ) -> PaymentResponse:
        checkout = await self._load(db, code)
        if checkout.status == CheckoutStatus.PAID.value:
            return self._replay_points(checkout, user_id)
        checkout = await self._expire_if_stale(db, checkout)
        _raise_if_not_reserved_by(checkout, user_id)
        pdv = await self._require_pdv(db, checkout.pdv_id)

        async def _work() -> tuple[PdvCheckout, bool]:
            await self._ledger.repo.lock_balances(db, [user_id])
            current = await self._repo.get_checkout(db, code, for_update=True)
            if current is None:
                raise CheckoutNotFoundError(code)
            if current.status == CheckoutStatus.PAID.value:
                return current, True
            _raise_if_not_reserved_by(current, user_id)
            if current.is_past_expiry(self._clock()):
                raise CheckoutExpiredError(code)
            paid = await self._settle(
                db,
                current,
                user_id,
                pdv,
                PaymentMethod.POINTS,
                points_used=current.total_points,
                money_paid_cents=0,
                cashback=calc_cashback(current.total_points, pdv.cashback_bps),
                external_payment_id=None,
            )
            return paid, False

        paid, already = await run_atomic(db, self._ledger.locks, [user_id], _work)
        if already:
            return self._replay_points(paid, user_id)

        logger.info(
            "Checkout %s paid with %d points by user=%s (cashback %d)",
            code, paid.points_used, user_id, paid.cashback_earned,
        )
        await self._publish_paid(paid)
        return PaymentResponse.from_checkout(paid)

    def _replay_points(self, checkout: PdvCheckout, user_id: str) -> PaymentResponse:
        if (
            checkout.payment_method == PaymentMethod.POINTS.value
            and checkout.user_id == user_id
        ):
            return PaymentResponse.from_checkout(checkout, replayed=True)
        raise AlreadyPaidError(checkout.code)

    # ------------------------------------------------------------------
    # Payment gateway side
    # ------------------------------------------------------------------

    async def confirm_money_payment(
        self,
        db: AsyncSession,
        code: str,
        external_payment_id: str,
        money_paid_cents: int,
        points_applied: int = 0,
    ) -> PaymentResponse:
        """Settle a checkout the gateway reports as paid in money (or money + points)."""
        checkout = await self._load(db, code)
        if checkout.status == CheckoutStatus.PAID.value:
            return self._replay_money(checkout, external_payment_id)

        if money_paid_cents < 0:
            raise InvalidAmountError(money_paid_cents)
        if points_applied < 0 or points_applied > checkout.total_points:
            raise InvalidAmountError(points_applied)
        if money_paid_cents == 0 and points_applied == 0:
            raise InvalidAmountError(0)

        checkout = await self._expire_if_stale(db, checkout)
        if checkout.status == CheckoutStatus.OPEN.value or checkout.user_id is None:
            raise CheckoutStateError(code, checkout.status)
        user_id = checkout.user_id
        _raise_if_not_reserved_by(checkout, user_id)
        pdv = await self._require_pdv(db, checkout.pdv_id)
        method = PaymentMethod.MIXED if points_applied > 0 else PaymentMethod.MONEY

        async def _work() -> tuple[PdvCheckout, bool]:
            await self._ledger.repo.lock_balances(db, [user_id])
            current = await self._repo.get_checkout(db, code, for_update=True)
            if current is None:
                raise CheckoutNotFoundError(code)
            if current.status == CheckoutStatus.PAID.value:
                return current, True
            _raise_if_not_reserved_by(current, user_id)
            if current.is_past_expiry(self._clock()):
                raise CheckoutExpiredError(code)
            paid = await self._settle(
                db,
                current,
                user_id,
                pdv,
                method,
                points_used=points_applied,
                money_paid_cents=money_paid_cents,
                cashback=money_cashback(money_paid_cents, pdv.cashback_bps),
                external_payment_id=external_payment_id,
            )
            return paid, False

        paid, already = await run_atomic(db, self._ledger.locks, [user_id], _work)
        if already:
            return self._replay_money(paid, external_payment_id)

        logger.info(
            "Checkout %s paid via %s (payment=%s, %d cents, %d points, cashback %d)",
            code, method.value, external_payment_id, money_paid_cents,
            points_applied, paid.cashback_earned,
        )
        await self._publish_paid(paid)
        return PaymentResponse.from_checkout(paid)

    def _replay_money(self, checkout: PdvCheckout, external_payment_id: str) -> PaymentResponse:
        if checkout.external_payment_id == external_payment_id:
            return PaymentResponse.from_checkout(checkout, replayed=True)
        raise AlreadyPaidError(checkout.code)
