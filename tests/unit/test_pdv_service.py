"""Unit tests for the PDV checkout state machine."""

import json
from datetime import timedelta
from unittest.mock import patch

import pytest

from src.pe_common.errors import (
    AlreadyPaidError,
    CheckoutExpiredError,
    CheckoutNotFoundError,
    CheckoutStateError,
    InsufficientBalanceError,
    InternalError,
    InvalidAmountError,
    OwnershipMismatchError,
    PdvNotActiveError,
    PdvNotFoundError,
    ProductUnavailableError,
)
from src.pe_notify.publisher import QueuePublisher
from src.pe_pdv.application.schemas import CheckoutResponse
from src.pe_pdv.application.service import CheckoutService
from src.pe_pdv.domain.models import Pdv, PdvProduct
from src.pe_points.application.service import LedgerService
from tests.fakes import FakeClock, FakePdvRepository, FakePointsRepository, FakeSession


@pytest.fixture
def pdv_repo() -> FakePdvRepository:
    repo = FakePdvRepository()
    repo.add_pdv(Pdv(id="pdv1", name="Main Bar", cashback_bps=1000))
    repo.add_pdv(Pdv(id="pdv2", name="Merch Stand"))
    repo.add_pdv(Pdv(id="pdv-off", name="Closed Kiosk", status="INACTIVE"))
    repo.add_product(PdvProduct("p1", "pdv1", "Beer", 100, 1000, stock=10))
    repo.add_product(PdvProduct("p2", "pdv1", "Burger", 50, 550, stock=1))
    repo.add_product(PdvProduct("p3", "pdv1", "Old Menu", 10, 100, stock=5, is_active=False))
    repo.add_product(PdvProduct("p0", "pdv1", "Water", 0, 0, stock=5))
    repo.add_product(PdvProduct("px", "pdv2", "T-Shirt", 300, 5000, stock=5))
    return repo


@pytest.fixture
def service(
    pdv_repo: FakePdvRepository,
    ledger: LedgerService,
    publisher: QueuePublisher,
    clock: FakeClock,
    points_repo: FakePointsRepository,
) -> CheckoutService:
    points_repo.seed_balance("alice", 1000)
    points_repo.seed_balance("bob", 10)
    return CheckoutService(repo=pdv_repo, ledger=ledger, publisher=publisher, clock=clock)


async def _create(
    service: CheckoutService, db: FakeSession, items: list[tuple[str, int]] | None = None
) -> CheckoutResponse:
    return await service.create_checkout(db, "pdv1", items or [("p1", 1)])


def _topics(publisher: QueuePublisher) -> list[tuple[str, str]]:
    return [(topic, target) for topic, _, target in publisher.drain()]


class TestCreateCheckout:
    async def test_merges_lines_and_reserves_stock(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        publisher: QueuePublisher,
        clock: FakeClock,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db, [("p1", 2), ("p2", 1), ("p1", 1)])

        assert c.status == "OPEN"
        assert len(c.code) == 6
        assert [(i.product_id, i.quantity) for i in c.items] == [("p1", 3), ("p2", 1)]
        assert c.total_points == 350
        assert c.total_money_cents == 3550
        assert c.total_money_display == "R$35.50"
        assert c.expires_at == (clock.now + timedelta(minutes=5)).isoformat()
        assert json.loads(c.qr_code_data) == {"type": "pdv_checkout", "code": c.code, "pdv_id": "pdv1"}
        assert pdv_repo.products["p1"].reserved == 3
        assert pdv_repo.products["p2"].reserved == 1
        assert _topics(publisher) == [("checkout.created", "pdv:pdv1")]

    async def test_unknown_pdv(self, service: CheckoutService, db: FakeSession) -> None:
        with pytest.raises(PdvNotFoundError):
            await service.create_checkout(db, "nope", [("p1", 1)])

    async def test_inactive_pdv(self, service: CheckoutService, db: FakeSession) -> None:
        with pytest.raises(PdvNotActiveError):
            await service.create_checkout(db, "pdv-off", [("p1", 1)])

    @pytest.mark.parametrize("product_id", ["px", "p3", "missing"])
    async def test_product_not_sold_here(
        self, service: CheckoutService, db: FakeSession, product_id: str
    ) -> None:
        with pytest.raises(ProductUnavailableError):
            await _create(service, db, [(product_id, 1)])

    async def test_out_of_stock_reserves_nothing(
        self, service: CheckoutService, pdv_repo: FakePdvRepository, db: FakeSession
    ) -> None:
        with pytest.raises(ProductUnavailableError):
            await _create(service, db, [("p1", 2), ("p2", 2)])
        assert pdv_repo.products["p1"].reserved == 0
        assert pdv_repo.checkouts == {}

    async def test_retries_taken_code(
        self, service: CheckoutService, pdv_repo: FakePdvRepository, db: FakeSession
    ) -> None:
        pdv_repo.taken_codes.add("AAAAAA")
        with patch(
            "src.pe_pdv.application.service.generate_checkout_code",
            side_effect=["AAAAAA", "BBBBBB"],
        ):
            c = await _create(service, db)
        assert c.code == "BBBBBB"

    async def test_gives_up_when_codes_exhausted(
        self, service: CheckoutService, pdv_repo: FakePdvRepository, db: FakeSession
    ) -> None:
        pdv_repo.taken_codes.add("AAAAAA")
        with patch(
            "src.pe_pdv.application.service.generate_checkout_code", return_value="AAAAAA"
        ):
            with pytest.raises(InternalError):
                await _create(service, db)


class TestGetCheckout:
    async def test_unknown_code(self, service: CheckoutService, db: FakeSession) -> None:
        with pytest.raises(CheckoutNotFoundError):
            await service.get_checkout(db, "ZZZZZZ")

    async def test_lazy_expiry(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        publisher: QueuePublisher,
        clock: FakeClock,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        publisher.drain()
        clock.advance(minutes=5)

        seen = await service.get_checkout(db, c.code)

        assert seen.status == "EXPIRED"
        assert pdv_repo.products["p1"].reserved == 0
        assert _topics(publisher) == [("checkout.expired", "pdv:pdv1")]


class TestBind:
    async def test_reserves_for_member(
        self, service: CheckoutService, publisher: QueuePublisher, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        publisher.drain()

        bound = await service.bind_user(db, c.code, "alice")

        assert bound.checkout.status == "RESERVED"
        assert bound.checkout.user_id == "alice"
        assert bound.balance == 1000
        assert bound.can_pay_with_points is True
        assert _topics(publisher) == [("checkout.reserved", "pdv:pdv1")]

    async def test_rebind_same_member_is_noop(
        self, service: CheckoutService, publisher: QueuePublisher, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        publisher.drain()

        again = await service.bind_user(db, c.code, "alice")

        assert again.checkout.status == "RESERVED"
        assert publisher.drain() == []

    async def test_other_member_rejected(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        with pytest.raises(OwnershipMismatchError):
            await service.bind_user(db, c.code, "bob")

    async def test_low_balance_flag(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        bound = await service.bind_user(db, c.code, "bob")
        assert bound.can_pay_with_points is False

    async def test_expired(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        clock: FakeClock,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        clock.advance(minutes=6)
        with pytest.raises(CheckoutExpiredError):
            await service.bind_user(db, c.code, "alice")
        assert pdv_repo.checkouts[c.code].status == "EXPIRED"
        assert pdv_repo.products["p1"].reserved == 0

    async def test_cancelled(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        await service.cancel_checkout(db, c.code)
        with pytest.raises(CheckoutStateError):
            await service.bind_user(db, c.code, "alice")


class TestPayWithPoints:
    async def test_settles_checkout(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        points_repo: FakePointsRepository,
        publisher: QueuePublisher,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        publisher.drain()

        paid = await service.pay_with_points(db, c.code, "alice")

        assert paid.payment_method == "POINTS"
        assert paid.points_used == 100
        assert paid.cashback_earned == 10
        assert paid.balance_after == 910
        assert paid.replayed is False
        assert paid.order_id in pdv_repo.orders
        assert pdv_repo.checkouts[c.code].status == "PAID"
        assert (pdv_repo.products["p1"].stock, pdv_repo.products["p1"].reserved) == (9, 0)

        debit, cashback = points_repo.entries_for("alice")[-2:]
        assert (debit.source, debit.amount, debit.source_id) == ("PDV_PURCHASE", 100, c.code)
        assert (cashback.source, cashback.amount) == ("CASHBACK", 10)
        assert points_repo.balances["alice"].balance == 910

        assert _topics(publisher) == [
            ("balance.changed", "user:alice"),
            ("checkout.paid", "pdv:pdv1"),
            ("checkout.paid", "user:alice"),
        ]

    async def test_replay_returns_stored_result(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        points_repo: FakePointsRepository,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        first = await service.pay_with_points(db, c.code, "alice")

        second = await service.pay_with_points(db, c.code, "alice")

        assert second.replayed is True
        assert second.order_id == first.order_id
        assert second.balance_after == 910
        assert points_repo.balances["alice"].balance == 910
        assert len(pdv_repo.orders) == 1

    async def test_paid_by_someone_else(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        await service.pay_with_points(db, c.code, "alice")
        with pytest.raises(AlreadyPaidError):
            await service.pay_with_points(db, c.code, "bob")

    async def test_unbound_checkout(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        with pytest.raises(CheckoutStateError):
            await service.pay_with_points(db, c.code, "alice")

    async def test_not_owner(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        with pytest.raises(OwnershipMismatchError):
            await service.pay_with_points(db, c.code, "bob")

    async def test_insufficient_balance_changes_nothing(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        points_repo: FakePointsRepository,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "bob")

        with pytest.raises(InsufficientBalanceError):
            await service.pay_with_points(db, c.code, "bob")

        assert pdv_repo.checkouts[c.code].status == "RESERVED"
        assert pdv_repo.products["p1"].reserved == 1
        assert pdv_repo.orders == {}
        assert points_repo.balances["bob"].balance == 10

    async def test_expired_before_payment(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        clock: FakeClock,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        clock.advance(minutes=6)

        with pytest.raises(CheckoutExpiredError):
            await service.pay_with_points(db, c.code, "alice")
        assert pdv_repo.products["p1"].reserved == 0

    async def test_free_checkout_skips_debit(
        self,
        service: CheckoutService,
        points_repo: FakePointsRepository,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db, [("p0", 2)])
        await service.bind_user(db, c.code, "alice")
        entries_before = len(points_repo.entries)

        paid = await service.pay_with_points(db, c.code, "alice")

        assert paid.points_used == 0
        assert paid.cashback_earned == 0
        assert paid.balance_after == 1000
        assert len(points_repo.entries) == entries_before


class TestConfirmMoneyPayment:
    async def test_money_payment_earns_cashback(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        points_repo: FakePointsRepository,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db, [("p1", 3)])
        await service.bind_user(db, c.code, "alice")

        paid = await service.confirm_money_payment(db, c.code, "pay-1", 3000)

        assert paid.payment_method == "MONEY"
        assert paid.points_used == 0
        assert paid.money_paid_cents == 3000
        assert paid.cashback_earned == 3
        assert paid.balance_after == 1003
        order = pdv_repo.orders[paid.order_id]
        assert order.external_payment_id == "pay-1"
        assert points_repo.entries_for("alice")[-1].source == "CASHBACK"

    async def test_replay_by_external_id(
        self, service: CheckoutService, db: FakeSession
    ) -> None:
        c = await _create(service, db, [("p1", 3)])
        await service.bind_user(db, c.code, "alice")
        first = await service.confirm_money_payment(db, c.code, "pay-1", 3000)

        again = await service.confirm_money_payment(db, c.code, "pay-1", 3000)
        assert again.replayed is True
        assert again.order_id == first.order_id

        with pytest.raises(AlreadyPaidError):
            await service.confirm_money_payment(db, c.code, "pay-2", 3000)

    async def test_mixed_payment_debits_points(
        self,
        service: CheckoutService,
        points_repo: FakePointsRepository,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")

        paid = await service.confirm_money_payment(db, c.code, "pay-3", 500, points_applied=50)

        assert paid.payment_method == "MIXED"
        assert paid.points_used == 50
        assert paid.cashback_earned == 0
        assert paid.balance_after == 950
        assert points_repo.entries_for("alice")[-1].source == "PDV_PURCHASE"

    @pytest.mark.parametrize(
        ("money", "points"),
        [(0, 0), (-1, 0), (100, -1), (100, 101)],
    )
    async def test_invalid_amounts(
        self, service: CheckoutService, db: FakeSession, money: int, points: int
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        with pytest.raises(InvalidAmountError):
            await service.confirm_money_payment(db, c.code, "pay-x", money, points)

    async def test_requires_reservation(self, service: CheckoutService, db: FakeSession) -> None:
        c = await _create(service, db)
        with pytest.raises(CheckoutStateError):
            await service.confirm_money_payment(db, c.code, "pay-x", 1000)


class TestCancel:
    async def test_cancel_open_releases_stock(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        publisher: QueuePublisher,
        db: FakeSession,
    ) -> None:
        c = await _create(service, db)
        publisher.drain()

        cancelled = await service.cancel_checkout(db, c.code)

        assert cancelled.status == "CANCELLED"
        assert pdv_repo.products["p1"].reserved == 0
        assert _topics(publisher) == [("checkout.cancelled", "pdv:pdv1")]

    async def test_cancel_is_idempotent(
        self, service: CheckoutService, publisher: QueuePublisher, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        await service.cancel_checkout(db, c.code)
        publisher.drain()

        again = await service.cancel_checkout(db, c.code)

        assert again.status == "CANCELLED"
        assert publisher.drain() == []

    async def test_member_cancels_own_reservation(
        self, service: CheckoutService, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        cancelled = await service.cancel_checkout(db, c.code, user_id="alice")
        assert cancelled.status == "CANCELLED"

    async def test_member_cannot_cancel_others(
        self, service: CheckoutService, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        with pytest.raises(OwnershipMismatchError):
            await service.cancel_checkout(db, c.code, user_id="bob")

    async def test_paid_cannot_be_cancelled(
        self, service: CheckoutService, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        await service.bind_user(db, c.code, "alice")
        await service.pay_with_points(db, c.code, "alice")
        with pytest.raises(AlreadyPaidError):
            await service.cancel_checkout(db, c.code)

    async def test_expired_cannot_be_cancelled(
        self, service: CheckoutService, clock: FakeClock, db: FakeSession
    ) -> None:
        c = await _create(service, db)
        clock.advance(minutes=6)
        with pytest.raises(CheckoutExpiredError):
            await service.cancel_checkout(db, c.code)


class TestExpireStale:
    async def test_expires_only_live_checkouts(
        self,
        service: CheckoutService,
        pdv_repo: FakePdvRepository,
        points_repo: FakePointsRepository,
        clock: FakeClock,
        db: FakeSession,
    ) -> None:
        open_one = await _create(service, db)
        reserved = await _create(service, db)
        await service.bind_user(db, reserved.code, "alice")
        paid = await _create(service, db)
        await service.bind_user(db, paid.code, "alice")
        await service.pay_with_points(db, paid.code, "alice")
        entries_before = len(points_repo.entries)

        clock.advance(minutes=6)
        result = await service.expire_stale(db)

        assert result.expired == 2
        assert sorted(result.codes) == sorted([open_one.code, reserved.code])
        assert pdv_repo.checkouts[paid.code].status == "PAID"
        assert pdv_repo.products["p1"].reserved == 0
        assert len(points_repo.entries) == entries_before

    async def test_nothing_to_expire(self, service: CheckoutService, db: FakeSession) -> None:
        await _create(service, db)
        result = await service.expire_stale(db)
        assert result.expired == 0
        assert result.codes == []
