"""Domain models for pe_pdv — pure dataclasses, no SQLAlchemy dependency.

Checkout lifecycle:
    OPEN ──bind──► RESERVED ──pay──► PAID
    OPEN | RESERVED ──expires_at passes──► EXPIRED
    OPEN | RESERVED ──cancel──► CANCELLED
PAID, EXPIRED and CANCELLED are terminal.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from src.pe_common.enums import CheckoutStatus, PdvStatus

TRANSITIONS: dict[CheckoutStatus, frozenset[CheckoutStatus]] = {
    CheckoutStatus.OPEN: frozenset(
        {CheckoutStatus.RESERVED, CheckoutStatus.EXPIRED, CheckoutStatus.CANCELLED}
    ),
    CheckoutStatus.RESERVED: frozenset(
        {CheckoutStatus.PAID, CheckoutStatus.EXPIRED, CheckoutStatus.CANCELLED}
    ),
    CheckoutStatus.PAID: frozenset(),
    CheckoutStatus.EXPIRED: frozenset(),
    CheckoutStatus.CANCELLED: frozenset(),
}

LIVE_STATUSES = (CheckoutStatus.OPEN.value, CheckoutStatus.RESERVED.value)


def can_transition(src: str, dst: str) -> bool:
    return CheckoutStatus(dst) in TRANSITIONS[CheckoutStatus(src)]


@dataclass
class Pdv:
    id: str
    name: str
    location: str | None = None
    status: str = PdvStatus.ACTIVE.value
    cashback_bps: int = 0            # basis points, 500 = 5%

    @property
    def is_active(self) -> bool:
        return self.status == PdvStatus.ACTIVE.value


@dataclass
class PdvProduct:
    id: str
    pdv_id: str
    name: str
    price_points: int
    price_money_cents: int
    stock: int
    reserved: int = 0
    is_active: bool = True

    @property
    def available(self) -> int:
        return self.stock - self.reserved


@dataclass(frozen=True)
class CheckoutItem:
    product_id: str
    name: str
    quantity: int
    unit_price_points: int
    unit_price_money_cents: int

    @property
    def total_points(self) -> int:
        return self.unit_price_points * self.quantity

    @property
    def total_money_cents(self) -> int:
        return self.unit_price_money_cents * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckoutItem":
        return cls(
            product_id=str(data["product_id"]),
            name=data["name"],
            quantity=int(data["quantity"]),
            unit_price_points=int(data["unit_price_points"]),
            unit_price_money_cents=int(data["unit_price_money_cents"]),
        )


@dataclass
class PdvCheckout:
    code: str
    pdv_id: str
    items: list[CheckoutItem]
    total_points: int
    total_money_cents: int
    status: str                      # CheckoutStatus value
    expires_at: datetime
    created_at: datetime | None = None
    user_id: str | None = None
    # Settlement, set once on PAID
    payment_method: str | None = None
    points_used: int = 0
    money_paid_cents: int = 0
    cashback_earned: int = 0
    external_payment_id: str | None = None
    order_id: str | None = None
    balance_after: int | None = None
    paid_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def is_past_expiry(self, now: datetime) -> bool:
        return self.is_live and now >= self.expires_at


@dataclass
class Order:
    id: str
    user_id: str
    pdv_id: str
    checkout_code: str
    items: list[CheckoutItem] = field(default_factory=list)
    payment_method: str = ""
    points_used: int = 0
    money_paid_cents: int = 0
    cashback_earned: int = 0
    external_payment_id: str | None = None
    created_at: datetime | None = None
