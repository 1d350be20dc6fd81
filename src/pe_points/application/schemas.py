"""Pydantic schemas and cursor utilities for pe_points API."""

import base64
import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.pe_common.enums import EntryType, SummaryPeriod, TransactionSource
from src.pe_points.domain.models import (
    LedgerEntry,
    Member,
    PointsBalance,
    PointsSummary,
    RecentRecipient,
)

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except Exception:
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class TransferRequest(BaseModel):
    recipient_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., gt=0, description="Points to send")
    message: str | None = Field(None, max_length=200)


class AdjustmentRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., gt=0)
    reason: str = Field(..., max_length=500)


class RefundRequest(BaseModel):
    reason: str = Field(..., max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    last_transaction_at: datetime | None = None

    @classmethod
    def from_balance(cls, bal: PointsBalance) -> "BalanceResponse":
        return cls(
            user_id=bal.user_id,
            balance=bal.balance,
            lifetime_earned=bal.lifetime_earned,
            lifetime_spent=bal.lifetime_spent,
            last_transaction_at=bal.last_transaction_at,
        )


class LedgerEntryItem(BaseModel):
    id: int
    entry_type: EntryType
    amount: int
    signed_amount: int
    balance_after: int
    source: TransactionSource
    source_id: str | None
    description: str | None
    metadata: dict[str, Any]
    refunded_entry_id: int | None = None
    created_at: str  # ISO8601 string

    @classmethod
    def from_entry(cls, e: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=e.id,
            entry_type=EntryType(e.entry_type),
            amount=e.amount,
            signed_amount=e.signed_amount,
            balance_after=e.balance_after,
            source=TransactionSource(e.source),
            source_id=e.source_id,
            description=e.description,
            metadata=e.metadata,
            refunded_entry_id=e.refunded_entry_id,
            created_at=e.created_at.isoformat() if e.created_at else "",
        )


class HistoryResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool


class SummaryResponse(BaseModel):
    period: SummaryPeriod
    start_date: str
    end_date: str
    earned: int
    spent: int
    net: int
    by_source: dict[str, int]
    by_destination: dict[str, int]

    @classmethod
    def from_summary(cls, s: PointsSummary) -> "SummaryResponse":
        return cls(
            period=SummaryPeriod(s.period),
            start_date=s.start_at.date().isoformat(),
            end_date=s.end_at.date().isoformat(),
            earned=s.earned,
            spent=s.spent,
            net=s.net,
            by_source=s.by_source,
            by_destination=s.by_destination,
        )


class RecipientInfo(BaseModel):
    id: str
    name: str
    avatar_url: str | None = None

    @classmethod
    def from_member(cls, m: Member) -> "RecipientInfo":
        return cls(id=m.id, name=m.name, avatar_url=m.avatar_url)


class TransferResponse(BaseModel):
    transaction_id: str
    amount: int
    recipient: RecipientInfo
    sender_balance_after: int
    created_at: str


class RecentRecipientItem(BaseModel):
    id: str
    name: str
    avatar_url: str | None
    last_transfer_at: str
    transfer_count: int

    @classmethod
    def from_recipient(cls, r: RecentRecipient) -> "RecentRecipientItem":
        return cls(
            id=r.recipient_id,
            name=r.name,
            avatar_url=r.avatar_url,
            last_transfer_at=r.last_transfer_at.isoformat(),
            transfer_count=r.transfer_count,
        )


class AdjustmentResponse(BaseModel):
    entry_id: int
    user_id: str
    entry_type: EntryType
    amount: int
    balance_after: int
    source: TransactionSource
    refunded_entry_id: int | None = None

    @classmethod
    def from_entry(cls, e: LedgerEntry) -> "AdjustmentResponse":
        return cls(
            entry_id=e.id,
            user_id=e.user_id,
            entry_type=EntryType(e.entry_type),
            amount=e.amount,
            balance_after=e.balance_after,
            source=TransactionSource(e.source),
            refunded_entry_id=e.refunded_entry_id,
        )


class InvariantReport(BaseModel):
    ok: bool
    violations: list[str]
