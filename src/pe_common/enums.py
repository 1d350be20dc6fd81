"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class EntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionSource(str, Enum):
    EVENT_CHECKIN = "EVENT_CHECKIN"
    # P2P transfer (paired, same source_id)
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    # PDV
    PDV_PURCHASE = "PDV_PURCHASE"
    CASHBACK = "CASHBACK"
    # Admin console
    ADMIN_CREDIT = "ADMIN_CREDIT"
    ADMIN_DEBIT = "ADMIN_DEBIT"
    REFUND = "REFUND"
    # Credited by neighbouring modules through the same write primitive
    SUBSCRIPTION_BONUS = "SUBSCRIPTION_BONUS"
    STORE_PURCHASE = "STORE_PURCHASE"
    DAILY_POST = "DAILY_POST"
    REFERRAL = "REFERRAL"


class SummaryPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class EventStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ONGOING = "ONGOING"
    ENDED = "ENDED"
    CANCELLED = "CANCELLED"


class CheckinWindowState(str, Enum):
    PENDING = "PENDING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PdvStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class CheckoutStatus(str, Enum):
    OPEN = "OPEN"
    RESERVED = "RESERVED"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    POINTS = "POINTS"
    MONEY = "MONEY"
    MIXED = "MIXED"


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    PDV = "pdv"
    SYSTEM = "system"
