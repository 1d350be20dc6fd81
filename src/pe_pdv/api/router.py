"""pe_pdv REST API — terminal checkout creation, member bind/pay, gateway confirmation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.database import get_db_session
from src.pe_common.enums import Role
from src.pe_common.response import ApiResponse, success_response
from src.pe_gateway.auth.dependencies import (
    CurrentUser,
    get_current_user,
    require_system,
    require_terminal,
)
from src.pe_pdv.application.schemas import ConfirmMoneyRequest, CreateCheckoutRequest
from src.pe_pdv.application.service import CheckoutService

router = APIRouter(prefix="/pdv", tags=["pdv"])

_service = CheckoutService()


@router.post("/{pdv_id}/checkouts", status_code=201)
async def create_checkout(
    pdv_id: str,
    body: CreateCheckoutRequest,
    _terminal: Annotated[CurrentUser, Depends(require_terminal)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    items = [(i.product_id, i.quantity) for i in body.items]
    data = await _service.create_checkout(db, pdv_id, items)
    return success_response(data.model_dump(), request)


@router.get("/checkouts/{code}")
async def get_checkout(
    code: str,
    _user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_checkout(db, code.upper())
    return success_response(data.model_dump(), request)


@router.post("/checkouts/{code}/bind")
async def bind_checkout(
    code: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.bind_user(db, code.upper(), current_user.id)
    return success_response(data.model_dump(), request)


@router.post("/checkouts/{code}/pay-points")
async def pay_with_points(
    code: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.pay_with_points(db, code.upper(), current_user.id)
    return success_response(data.model_dump(), request)


@router.post("/checkouts/{code}/cancel")
async def cancel_checkout(
    code: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    # Members may only cancel their own reservation; terminals and admins any
    owner = None if current_user.role in (Role.PDV, Role.ADMIN) else current_user.id
    data = await _service.cancel_checkout(db, code.upper(), owner)
    return success_response(data.model_dump(), request)


@router.post("/checkouts/{code}/confirm-money")
async def confirm_money_payment(
    code: str,
    body: ConfirmMoneyRequest,
    _gateway: Annotated[CurrentUser, Depends(require_system)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_money_payment(
        db,
        code.upper(),
        body.external_payment_id,
        body.money_paid_cents,
        body.points_applied,
    )
    return success_response(data.model_dump(), request)
