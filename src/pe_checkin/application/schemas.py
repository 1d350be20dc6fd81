"""Pydantic schemas for pe_checkin API."""

from pydantic import BaseModel, Field

from src.pe_checkin.domain.models import QrPayload


class CheckinRequest(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=64)
    checkin_number: int = Field(..., ge=1)
    security_token: str = Field(..., min_length=1, max_length=128)
    timestamp: int = Field(..., description="Epoch seconds carried in the QR payload")


class ManualCheckinRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    checkin_number: int = Field(..., ge=1)


class QrPayloadResponse(BaseModel):
    type: str
    event_id: str
    checkin_number: int
    security_token: str
    timestamp: int
    expires_at: int

    @classmethod
    def from_payload(cls, p: QrPayload) -> "QrPayloadResponse":
        return cls(
            type=p.type,
            event_id=p.event_id,
            checkin_number=p.checkin_number,
            security_token=p.security_token,
            timestamp=p.timestamp,
            expires_at=p.expires_at,
        )


class CheckinProgress(BaseModel):
    completed: int
    total: int
    percentage: int

    @classmethod
    def of(cls, completed: int, total: int) -> "CheckinProgress":
        # Round half up
        percentage = (completed * 200 + total) // (2 * total) if total > 0 else 0
        return cls(completed=completed, total=total, percentage=percentage)


class CheckinResponse(BaseModel):
    success: bool = True
    checkin_id: int
    event_id: str
    checkin_number: int
    points_awarded: int
    balance_after: int | None
    is_manual: bool
    progress: CheckinProgress
