"""Pydantic schemas for pe_pdv API."""

import json

from pydantic import BaseModel, Field

from src.pe_common.money import cents_to_display
from src.pe_pdv.domain.models import CheckoutItem, PdvCheckout

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CheckoutItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1, le=100)


class CreateCheckoutRequest(BaseModel):
    items: list[CheckoutItemRequest] = Field(..., min_length=1, max_length=50)


class ConfirmMoneyRequest(BaseModel):
    external_payment_id: str = Field(..., min_length=1, max_length=128)
    money_paid_cents: int = Field(..., ge=0)
    points_applied: int = Field(0, ge=0, description="Points part of a mixed payment")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CheckoutItemOut(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price_points: int
    unit_price_money_cents: int

    @classmethod
    def from_item(cls, i: CheckoutItem) -> "CheckoutItemOut":
        return cls(
            product_id=i.product_id,
            name=i.name,
            quantity=i.quantity,
            unit_price_points=i.unit_price_points,
            unit_price_money_cents=i.unit_price_money_cents,
        )


def qr_code_data(checkout: PdvCheckout) -> str:
    return json.dumps({"type": "pdv_checkout", "code": checkout.code, "pdv_id": checkout.pdv_id})


class CheckoutResponse(BaseModel):
    code: str
    pdv_id: str
    status: str
    items: list[CheckoutItemOut]
    total_points: int
    total_money_cents: int
    total_money_display: str
    user_id: str | None
    expires_at: str
    payment_method: str | None = None
    order_id: str | None = None
    qr_code_data: str

    @classmethod
    def from_checkout(cls, c: PdvCheckout) -> "CheckoutResponse":
        return cls(
            code=c.code,
            pdv_id=c.pdv_id,
            status=c.status,
            items=[CheckoutItemOut.from_item(i) for i in c.items],
            total_points=c.total_points,
            total_money_cents=c.total_money_cents,
            total_money_display=cents_to_display(c.total_money_cents),
            user_id=c.user_id,
            expires_at=c.expires_at.isoformat(),
            payment_method=c.payment_method,
            order_id=c.order_id,
            qr_code_data=qr_code_data(c),
        )


class BindResponse(BaseModel):
    checkout: CheckoutResponse
    balance: int
    can_pay_with_points: bool


class PaymentResponse(BaseModel):
    success: bool = True
    code: str
    order_id: str | None
    payment_method: str | None
    points_used: int
    money_paid_cents: int
    cashback_earned: int
    balance_after: int | None
    paid_at: str | None
    replayed: bool = False

    @classmethod
    def from_checkout(cls, c: PdvCheckout, replayed: bool = False) -> "PaymentResponse":
        return cls(
            code=c.code,
            order_id=c.order_id,
            payment_method=c.payment_method,
            points_used=c.points_used,
            money_paid_cents=c.money_paid_cents,
            cashback_earned=c.cashback_earned,
            balance_after=c.balance_after,
            paid_at=c.paid_at.isoformat() if c.paid_at else None,
            replayed=replayed,
        )


class ExpireStaleResponse(BaseModel):
    expired: int
    codes: list[str]
