"""pe_points REST API — member-facing balance, history, summary and transfers."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.database import get_db_session
from src.pe_common.enums import EntryType, SummaryPeriod, TransactionSource
from src.pe_common.response import ApiResponse, success_response
from src.pe_gateway.auth.dependencies import CurrentUser, get_current_user
from src.pe_points.application.schemas import TransferRequest
from src.pe_points.application.service import LedgerService
from src.pe_points.application.transfer_service import TransferService

router = APIRouter(prefix="/points", tags=["points"])

_ledger = LedgerService()
_transfers = TransferService(ledger=_ledger)


@router.get("/balance")
async def get_balance(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _ledger.get_balance(db, current_user.id)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/history")
async def list_history(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    entry_type: EntryType | None = Query(None, description="credit or debit"),
    source: TransactionSource | None = Query(None, description="Filter by source"),
) -> ApiResponse:
    data = await _ledger.list_history(
        db,
        current_user.id,
        cursor,
        limit,
        entry_type.value if entry_type else None,
        source.value if source else None,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.get("/summary")
async def get_summary(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    period: SummaryPeriod = Query(SummaryPeriod.MONTH),
) -> ApiResponse:
    data = await _ledger.get_summary(db, current_user.id, period)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/transfer")
async def transfer(
    body: TransferRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _transfers.transfer(
        db, current_user.id, body.recipient_id, body.amount, body.message
    )
    return success_response(data.model_dump(mode="json"), request)


@router.get("/transfer/recipients")
async def list_recent_recipients(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(5, ge=1, le=20),
) -> ApiResponse:
    items = await _transfers.list_recent_recipients(db, current_user.id, limit)
    return success_response([i.model_dump(mode="json") for i in items], request)
