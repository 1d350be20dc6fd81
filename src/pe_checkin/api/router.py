"""pe_checkin REST API — venue display QR and member check-in."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_checkin.application.schemas import CheckinRequest
from src.pe_checkin.application.service import CheckinService
from src.pe_common.database import get_db_session
from src.pe_common.response import ApiResponse, success_response
from src.pe_gateway.auth.dependencies import CurrentUser, get_current_user, require_terminal

router = APIRouter(prefix="/events", tags=["events"])

_service = CheckinService()


@router.get("/{event_id}/checkin/qr")
async def get_checkin_qr(
    event_id: str,
    _display: Annotated[CurrentUser, Depends(require_terminal)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    checkin_number: int | None = Query(None, ge=1, description="Defaults to the open window"),
) -> ApiResponse:
    if checkin_number is None:
        payload = await _service.current_qr_payload(db, event_id)
        data = payload.model_dump() if payload else None
    else:
        data = (await _service.issue_qr_payload(db, event_id, checkin_number)).model_dump()
    return success_response(data, request)


@router.post("/checkin")
async def checkin(
    body: CheckinRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.checkin(
        db,
        current_user.id,
        body.event_id,
        body.checkin_number,
        body.security_token,
        body.timestamp,
    )
    return success_response(data.model_dump(), request)
