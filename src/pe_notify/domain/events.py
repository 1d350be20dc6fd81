"""Outbound domain events and their target selectors.

Published only after the unit of work that produced them has committed.
Delivery (WebSocket, push) is somebody else's job; a target is just a
routing key such as "user:42" or "pdv:7".
"""

from dataclasses import dataclass, field
from typing import Any

BALANCE_CHANGED = "balance.changed"
CHECKIN_CONFIRMED = "checkin.confirmed"
CHECKIN_COUNTER = "checkin.counter"
CHECKOUT_CREATED = "checkout.created"
CHECKOUT_RESERVED = "checkout.reserved"
CHECKOUT_PAID = "checkout.paid"
CHECKOUT_CANCELLED = "checkout.cancelled"
CHECKOUT_EXPIRED = "checkout.expired"


def user_target(user_id: str) -> str:
    return f"user:{user_id}"


def event_target(event_id: str) -> str:
    return f"event:{event_id}"


def pdv_target(pdv_id: str) -> str:
    return f"pdv:{pdv_id}"


@dataclass
class DomainEvent:
    topic: str
    payload: dict[str, Any]
    targets: list[str] = field(default_factory=list)


def balance_changed(user_id: str, new_balance: int) -> DomainEvent:
    return DomainEvent(
        BALANCE_CHANGED,
        {"user_id": user_id, "new_balance": new_balance},
        [user_target(user_id)],
    )
