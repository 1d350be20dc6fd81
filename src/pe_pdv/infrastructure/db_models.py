"""SQLAlchemy ORM models for pe_pdv.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.pe_common.database import Base


class PdvORM(Base):
    __tablename__ = "pdvs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    cashback_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PdvProductORM(Base):
    __tablename__ = "pdv_products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pdv_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_money_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PdvCheckoutORM(Base):
    __tablename__ = "pdv_checkouts"

    code: Mapped[str] = mapped_column(String(6), primary_key=True)
    pdv_id: Mapped[str] = mapped_column(String(64), nullable=False)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    total_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_money_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    points_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    money_paid_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cashback_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    external_payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    balance_after: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class OrderORM(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pdv_id: Mapped[str] = mapped_column(String(64), nullable=False)
    checkout_code: Mapped[str] = mapped_column(String(6), nullable=False, unique=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    points_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    money_paid_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cashback_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    external_payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
