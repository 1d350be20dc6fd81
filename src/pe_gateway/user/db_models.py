"""SQLAlchemy ORM mapping for the users table.

The table belongs to the surrounding app (profiles, auth). The points engine
only reads id, name, avatar and the active flag to validate transfer
recipients and admin targets. Migration 001 creates a minimal version of it
for standalone deployments.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from src.pe_common.database import Base


class MemberModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
