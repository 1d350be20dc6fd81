"""SQLAlchemy ORM models for pe_checkin.

events is owned by the events module and only read here; event_checkins is
written by the check-in engine. Both are created by Alembic migrations.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.pe_common.database import Base


class EventORM(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="SCHEDULED")
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    checkins_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    checkin_interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    points_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    qr_secret: Mapped[str] = mapped_column(String(128), nullable=False)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class EventCheckinORM(Base):
    __tablename__ = "event_checkins"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", "checkin_number", name="uq_event_checkins_once"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    checkin_number: Mapped[int] = mapped_column(Integer, nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    ledger_entry_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
