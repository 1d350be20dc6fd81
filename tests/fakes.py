"""In-memory doubles for the repository Protocols.

Each fake keeps plain dicts of dataclasses. Mutating methods register the
store with the FakeSession first, which snapshots it; rollback() restores the
snapshot and commit() drops it. Data seeded directly on a fake (add_member,
add_event, ...) bypasses the session and is never rolled back.
"""

import copy
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from src.pe_checkin.domain.models import CheckinRecord, Event
from src.pe_common.datetime_utils import utc_now
from src.pe_common.enums import CheckoutStatus
from src.pe_common.errors import InternalError
from src.pe_pdv.domain.models import LIVE_STATUSES, Order, Pdv, PdvCheckout, PdvProduct
from src.pe_points.domain.models import LedgerEntry, Member, PointsBalance, RecentRecipient


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self._dirty: dict[int, tuple[Any, Any]] = {}

    def touch(self, store: Any) -> None:
        if id(store) not in self._dirty:
            self._dirty[id(store)] = (store, store.snapshot())

    async def commit(self) -> None:
        self.commits += 1
        self._dirty.clear()

    async def rollback(self) -> None:
        self.rollbacks += 1
        for store, saved in self._dirty.values():
            store.restore(saved)
        self._dirty.clear()


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or utc_now().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class _Store:
    _state_attrs: tuple[str, ...] = ()

    def snapshot(self) -> dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._state_attrs}

    def restore(self, saved: dict[str, Any]) -> None:
        for name, value in saved.items():
            setattr(self, name, value)


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------


class FakePointsRepository(_Store):
    _state_attrs = ("balances", "entries", "recipients", "next_entry_id")

    def __init__(self) -> None:
        self.balances: dict[str, PointsBalance] = {}
        self.entries: list[LedgerEntry] = []
        self.members: dict[str, Member] = {}
        self.recipients: dict[tuple[str, str], RecentRecipient] = {}
        self.next_entry_id = 1
        self.lock_calls: list[list[str]] = []

    # seeding helpers

    def add_member(self, user_id: str, name: str | None = None, is_active: bool = True) -> Member:
        member = Member(id=user_id, name=name or user_id.title(), is_active=is_active)
        self.members[user_id] = member
        return member

    def seed_balance(self, user_id: str, amount: int) -> None:
        """Credit through the ledger so balance and entries agree."""
        bal = self.balances.setdefault(user_id, PointsBalance(user_id=user_id))
        bal.balance += amount
        bal.lifetime_earned += amount
        self.append_entry(
            user_id, "credit", amount, bal.balance, "ADMIN_CREDIT", None, "seed", {}
        )

    def entries_for(self, user_id: str) -> list[LedgerEntry]:
        return [e for e in self.entries if e.user_id == user_id]

    def append_entry(
        self,
        user_id: str,
        entry_type: str,
        amount: int,
        balance_after: int,
        source: str,
        source_id: str | None,
        description: str | None,
        metadata: dict[str, Any],
        refunded_entry_id: int | None = None,
        created_at: datetime | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            id=self.next_entry_id,
            user_id=user_id,
            entry_type=entry_type,
            amount=amount,
            balance_after=balance_after,
            source=source,
            source_id=source_id,
            description=description,
            metadata=dict(metadata),
            refunded_entry_id=refunded_entry_id,
            created_at=created_at or utc_now(),
        )
        self.next_entry_id += 1
        self.entries.append(entry)
        return entry

    # protocol

    async def get_balance(self, db: Any, user_id: str) -> PointsBalance | None:
        bal = self.balances.get(user_id)
        return replace(bal) if bal else None

    async def lock_balances(self, db: Any, user_ids: list[str]) -> None:
        db.touch(self)
        self.lock_calls.append(sorted(user_ids))
        for uid in user_ids:
            self.balances.setdefault(uid, PointsBalance(user_id=uid))

    async def credit(self, db: Any, user_id: str, amount: int) -> PointsBalance:
        db.touch(self)
        bal = self.balances.setdefault(user_id, PointsBalance(user_id=user_id))
        bal.balance += amount
        bal.lifetime_earned += amount
        bal.version += 1
        return replace(bal)

    async def debit(self, db: Any, user_id: str, amount: int) -> PointsBalance | None:
        db.touch(self)
        bal = self.balances.get(user_id)
        if bal is None or bal.balance < amount:
            return None
        bal.balance -= amount
        bal.lifetime_spent += amount
        bal.version += 1
        return replace(bal)

    async def reverse_debit(self, db: Any, user_id: str, amount: int) -> PointsBalance:
        db.touch(self)
        bal = self.balances.setdefault(user_id, PointsBalance(user_id=user_id))
        bal.balance += amount
        bal.lifetime_spent -= amount
        bal.version += 1
        return replace(bal)

    async def reverse_credit(self, db: Any, user_id: str, amount: int) -> PointsBalance | None:
        db.touch(self)
        bal = self.balances.get(user_id)
        if bal is None or bal.balance < amount or bal.lifetime_earned < amount:
            return None
        bal.balance -= amount
        bal.lifetime_earned -= amount
        bal.version += 1
        return replace(bal)

    async def insert_entry(
        self,
        db: Any,
        user_id: str,
        entry_type: str,
        amount: int,
        balance_after: int,
        source: str,
        source_id: str | None,
        description: str | None,
        metadata: dict[str, Any],
        refunded_entry_id: int | None = None,
    ) -> LedgerEntry:
        db.touch(self)
        return self.append_entry(
            user_id, entry_type, amount, balance_after, source, source_id,
            description, metadata, refunded_entry_id,
        )

    async def get_entry(self, db: Any, entry_id: int) -> LedgerEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)

    async def get_refund_of(self, db: Any, entry_id: int) -> LedgerEntry | None:
        return next((e for e in self.entries if e.refunded_entry_id == entry_id), None)

    async def list_entries(
        self,
        db: Any,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
        source: str | None,
    ) -> list[LedgerEntry]:
        rows = [
            e for e in self.entries
            if e.user_id == user_id
            and (cursor_id is None or e.id < cursor_id)
            and (entry_type is None or e.entry_type == entry_type)
            and (source is None or e.source == source)
        ]
        rows.sort(key=lambda e: e.id, reverse=True)
        return rows[:limit]

    async def list_entries_between(
        self, db: Any, user_id: str, start_at: datetime, end_at: datetime
    ) -> list[LedgerEntry]:
        return [
            e for e in self.entries
            if e.user_id == user_id and e.created_at and start_at <= e.created_at <= end_at
        ]

    async def list_balances_with_last_entry(
        self, db: Any
    ) -> list[tuple[PointsBalance, int | None]]:
        result = []
        for uid in sorted(self.balances):
            own = self.entries_for(uid)
            result.append((replace(self.balances[uid]), own[-1].balance_after if own else None))
        return result

    async def get_member(self, db: Any, user_id: str) -> Member | None:
        return self.members.get(user_id)

    async def touch_recipient(self, db: Any, user_id: str, recipient_id: str) -> None:
        db.touch(self)
        member = self.members[recipient_id]
        key = (user_id, recipient_id)
        previous = self.recipients.get(key)
        self.recipients[key] = RecentRecipient(
            recipient_id=recipient_id,
            name=member.name,
            avatar_url=member.avatar_url,
            last_transfer_at=utc_now(),
            transfer_count=previous.transfer_count + 1 if previous else 1,
        )

    async def list_recent_recipients(
        self, db: Any, user_id: str, limit: int
    ) -> list[RecentRecipient]:
        rows = [r for (uid, _), r in self.recipients.items() if uid == user_id]
        rows.sort(key=lambda r: r.last_transfer_at, reverse=True)
        return rows[:limit]


# ---------------------------------------------------------------------------
# Check-in
# ---------------------------------------------------------------------------


class FakeCheckinRepository(_Store):
    _state_attrs = ("records", "next_record_id")

    def __init__(self) -> None:
        self.events: dict[str, Event] = {}
        self.records: dict[tuple[str, str, int], CheckinRecord] = {}
        self.next_record_id = 1

    def add_event(self, event: Event) -> Event:
        self.events[event.id] = event
        return event

    async def get_event(self, db: Any, event_id: str) -> Event | None:
        return self.events.get(event_id)

    async def get_record(
        self, db: Any, event_id: str, user_id: str, checkin_number: int
    ) -> CheckinRecord | None:
        return self.records.get((event_id, user_id, checkin_number))

    async def insert_record(
        self,
        db: Any,
        event_id: str,
        user_id: str,
        checkin_number: int,
        points_awarded: int,
        is_manual: bool,
        created_by: str | None,
    ) -> CheckinRecord | None:
        db.touch(self)
        key = (event_id, user_id, checkin_number)
        if key in self.records:
            return None
        record = CheckinRecord(
            id=self.next_record_id,
            event_id=event_id,
            user_id=user_id,
            checkin_number=checkin_number,
            points_awarded=points_awarded,
            is_manual=is_manual,
            created_by=created_by,
            created_at=utc_now(),
        )
        self.next_record_id += 1
        self.records[key] = record
        return replace(record)

    async def link_ledger_entry(self, db: Any, record_id: int, ledger_entry_id: int) -> None:
        db.touch(self)
        for record in self.records.values():
            if record.id == record_id:
                record.ledger_entry_id = ledger_entry_id

    async def list_user_checkin_numbers(
        self, db: Any, event_id: str, user_id: str
    ) -> list[int]:
        return sorted(n for (eid, uid, n) in self.records if eid == event_id and uid == user_id)

    async def count_checkins(self, db: Any, event_id: str) -> tuple[int, int]:
        keys = [k for k in self.records if k[0] == event_id]
        return len(keys), len({uid for _, uid, _ in keys})


# ---------------------------------------------------------------------------
# PDV
# ---------------------------------------------------------------------------


class FakePdvRepository(_Store):
    _state_attrs = ("products", "checkouts", "orders")

    def __init__(self) -> None:
        self.pdvs: dict[str, Pdv] = {}
        self.products: dict[str, PdvProduct] = {}
        self.checkouts: dict[str, PdvCheckout] = {}
        self.orders: dict[str, Order] = {}
        self.taken_codes: set[str] = set()

    def add_pdv(self, pdv: Pdv) -> Pdv:
        self.pdvs[pdv.id] = pdv
        return pdv

    def add_product(self, product: PdvProduct) -> PdvProduct:
        self.products[product.id] = product
        return product

    async def get_pdv(self, db: Any, pdv_id: str) -> Pdv | None:
        return self.pdvs.get(pdv_id)

    async def get_products(self, db: Any, product_ids: list[str]) -> list[PdvProduct]:
        return [replace(self.products[p]) for p in product_ids if p in self.products]

    async def reserve_stock(self, db: Any, product_id: str, quantity: int) -> bool:
        db.touch(self)
        product = self.products.get(product_id)
        if product is None or not product.is_active or product.available < quantity:
            return False
        product.reserved += quantity
        return True

    async def release_stock(self, db: Any, product_id: str, quantity: int) -> None:
        db.touch(self)
        product = self.products[product_id]
        product.reserved = max(product.reserved - quantity, 0)

    async def consume_stock(self, db: Any, product_id: str, quantity: int) -> None:
        db.touch(self)
        product = self.products[product_id]
        if product.reserved < quantity:
            raise InternalError(f"Reserved stock of {product_id} below {quantity}")
        product.stock -= quantity
        product.reserved -= quantity

    async def code_exists(self, db: Any, code: str) -> bool:
        return code in self.checkouts or code in self.taken_codes

    async def insert_checkout(self, db: Any, checkout: PdvCheckout) -> PdvCheckout:
        db.touch(self)
        stored = replace(checkout, created_at=utc_now())
        self.checkouts[checkout.code] = stored
        return replace(stored)

    async def get_checkout(
        self, db: Any, code: str, for_update: bool = False
    ) -> PdvCheckout | None:
        checkout = self.checkouts.get(code)
        return replace(checkout) if checkout else None

    async def update_status(
        self,
        db: Any,
        code: str,
        from_statuses: tuple[str, ...],
        to_status: str,
        user_id: str | None = None,
        not_expired_at: datetime | None = None,
    ) -> PdvCheckout | None:
        db.touch(self)
        checkout = self.checkouts.get(code)
        if checkout is None or checkout.status not in from_statuses:
            return None
        if not_expired_at is not None and not checkout.expires_at > not_expired_at:
            return None
        checkout.status = to_status
        if user_id is not None:
            checkout.user_id = user_id
        return replace(checkout)

    async def mark_paid(
        self,
        db: Any,
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
        db.touch(self)
        checkout = self.checkouts.get(code)
        if (
            checkout is None
            or checkout.status != CheckoutStatus.RESERVED.value
            or checkout.user_id != user_id
        ):
            return None
        checkout.status = CheckoutStatus.PAID.value
        checkout.payment_method = payment_method
        checkout.points_used = points_used
        checkout.money_paid_cents = money_paid_cents
        checkout.cashback_earned = cashback_earned
        checkout.external_payment_id = external_payment_id
        checkout.order_id = order_id
        checkout.balance_after = balance_after
        checkout.paid_at = paid_at
        return replace(checkout)

    async def insert_order(self, db: Any, order: Order) -> Order:
        db.touch(self)
        if any(o.checkout_code == order.checkout_code for o in self.orders.values()):
            raise InternalError(f"Duplicate order for checkout {order.checkout_code}")
        order.created_at = utc_now()
        self.orders[order.id] = order
        return order

    async def list_stale(self, db: Any, now: datetime, limit: int) -> list[PdvCheckout]:
        stale = [
            replace(c) for c in self.checkouts.values()
            if c.status in LIVE_STATUSES and c.expires_at <= now
        ]
        stale.sort(key=lambda c: c.expires_at)
        return stale[:limit]
