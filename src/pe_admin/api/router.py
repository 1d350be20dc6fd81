"""Admin console REST API — adjustments, refunds, manual check-in, maintenance."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_checkin.application.schemas import ManualCheckinRequest
from src.pe_checkin.application.service import CheckinService
from src.pe_common.database import get_db_session
from src.pe_common.response import ApiResponse, success_response
from src.pe_gateway.auth.dependencies import CurrentUser, require_admin
from src.pe_pdv.application.service import CheckoutService
from src.pe_points.application.adjustment_service import AdjustmentService
from src.pe_points.application.schemas import AdjustmentRequest, InvariantReport, RefundRequest
from src.pe_points.application.service import LedgerService

router = APIRouter(prefix="/admin", tags=["admin"])

_ledger = LedgerService()
_adjustments = AdjustmentService(ledger=_ledger)
_checkins = CheckinService(ledger=_ledger)
_checkouts = CheckoutService(ledger=_ledger)


@router.post("/points/grant")
async def grant_points(
    body: AdjustmentRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _adjustments.grant(db, admin.id, body.user_id, body.amount, body.reason)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/points/deduct")
async def deduct_points(
    body: AdjustmentRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _adjustments.deduct(db, admin.id, body.user_id, body.amount, body.reason)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/points/refund/{entry_id}")
async def refund_entry(
    entry_id: int,
    body: RefundRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _adjustments.refund(db, admin.id, entry_id, body.reason)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/points/invariants")
async def check_invariants(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    violations = await _ledger.verify_balance_invariants(db)
    report = InvariantReport(ok=not violations, violations=violations)
    return success_response(report.model_dump(), request)


@router.post("/events/{event_id}/checkins/manual")
async def manual_checkin(
    event_id: str,
    body: ManualCheckinRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _checkins.manual_checkin(
        db, admin.id, event_id, body.user_id, body.checkin_number
    )
    return success_response(data.model_dump(), request)


@router.post("/pdv/expire-stale")
async def expire_stale_checkouts(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _checkouts.expire_stale(db)
    return success_response(data.model_dump(), request)
