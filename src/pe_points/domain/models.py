"""Domain models for pe_points — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class PointsBalance:
    user_id: str
    balance: int = 0
    lifetime_earned: int = 0
    lifetime_spent: int = 0
    version: int = 0
    last_transaction_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL, monotonic per database
    user_id: str
    entry_type: str                  # EntryType value
    amount: int                      # always > 0; direction comes from entry_type
    balance_after: int               # balance snapshot right after this entry
    source: str                      # TransactionSource value
    source_id: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    refunded_entry_id: int | None = None
    created_at: datetime | None = None

    @property
    def signed_amount(self) -> int:
        return self.amount if self.entry_type == "credit" else -self.amount


@dataclass
class Member:
    id: str
    name: str
    avatar_url: str | None = None
    is_active: bool = True


@dataclass
class RecentRecipient:
    recipient_id: str
    name: str
    avatar_url: str | None
    last_transfer_at: datetime
    transfer_count: int


@dataclass
class PointsSummary:
    period: str
    start_at: datetime
    end_at: datetime
    earned: int = 0
    spent: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    by_destination: dict[str, int] = field(default_factory=dict)

    @property
    def net(self) -> int:
        return self.earned - self.spent
