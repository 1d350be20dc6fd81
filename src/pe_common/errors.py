"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: Points / Ledger
  3xxx: Event check-in
  4xxx: PDV checkout
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/User ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


class ForbiddenError(AppError):
    def __init__(self, role: str) -> None:
        super().__init__(1006, f"Role '{role}' required", 403)


# --- 2xxx: Points / Ledger ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} points, available {available} points",
            422,
        )
        self.required = required
        self.available = available


class InvalidAmountError(AppError):
    def __init__(self, amount: int) -> None:
        super().__init__(2002, f"Amount must be a positive integer, got {amount}", 422)


class LedgerEntryNotFoundError(AppError):
    def __init__(self, entry_id: int) -> None:
        super().__init__(2003, f"Ledger entry not found: {entry_id}", 404)


class AlreadyRefundedError(AppError):
    def __init__(self, entry_id: int) -> None:
        super().__init__(2004, f"Ledger entry {entry_id} has already been refunded", 409)


class SelfTransferError(AppError):
    def __init__(self) -> None:
        super().__init__(2005, "Cannot transfer points to yourself", 422)


class ReasonRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(2006, "A non-empty reason is required for admin adjustments", 422)


class MemberNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2007, f"Member not found: {user_id}", 404)


class InvalidRefundTargetError(AppError):
    def __init__(self, entry_id: int) -> None:
        super().__init__(2008, f"Ledger entry {entry_id} is a refund and cannot be refunded", 422)


# --- 3xxx: Event check-in ---

class EventNotFoundError(AppError):
    def __init__(self, event_id: str) -> None:
        super().__init__(3001, f"Event not found: {event_id}", 404)


class CheckinWindowNotFoundError(AppError):
    def __init__(self, event_id: str, checkin_number: int) -> None:
        super().__init__(
            3002, f"Event {event_id} has no check-in number {checkin_number}", 404
        )


class WindowClosedError(AppError):
    def __init__(self, detail: str = "Check-in window is not open") -> None:
        super().__init__(3003, detail, 422)


class TimestampSkewError(AppError):
    def __init__(self, skew_seconds: int) -> None:
        super().__init__(
            3004, f"QR code timestamp outside tolerance ({skew_seconds}s), scan again", 422
        )


class AlreadyCheckedInError(AppError):
    def __init__(self, checkin_number: int) -> None:
        super().__init__(3005, f"Check-in {checkin_number} already recorded", 409)


# --- 4xxx: PDV checkout ---

class CheckoutNotFoundError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(4001, f"Checkout not found: {code}", 404)


class CheckoutExpiredError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(4002, f"Checkout {code} has expired", 422)


class AlreadyPaidError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(4003, f"Checkout {code} is already paid", 409)


class OwnershipMismatchError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(4004, f"Checkout {code} is bound to another user", 403)


class CheckoutStateError(AppError):
    def __init__(self, code: str, status: str) -> None:
        super().__init__(4005, f"Checkout {code} in status {status} cannot do that", 422)


class PdvNotFoundError(AppError):
    def __init__(self, pdv_id: str) -> None:
        super().__init__(4006, f"PDV not found: {pdv_id}", 404)


class PdvNotActiveError(AppError):
    def __init__(self, pdv_id: str) -> None:
        super().__init__(4007, f"PDV is not active: {pdv_id}", 422)


class ProductUnavailableError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4008, f"Product unavailable: {detail}", 422)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class ConcurrencyConflictError(AppError):
    """Lock or version contention. Safe to retry; surfaced as 'try again'."""

    def __init__(self, detail: str = "Concurrent update, please try again") -> None:
        super().__init__(9003, detail, 409)
