"""ORM tables backing the alert repository and the recipient directory."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.alerts.models import DEFAULT_AUTHOR_ROLE, generate_alert_id, utcnow
from backend.app.core.database import Base


class AlertRecord(Base):
    __tablename__ = "alerts"

    # Insertion order; breaks created_at ties so "newest first" is stable
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(
        String(40), nullable=False, unique=True, index=True, default=generate_alert_id,
    )
    severity_level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String(140), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    district: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    disaster_location: Mapped[str] = mapped_column(String(120), nullable=False)
    author_role: Mapped[str] = mapped_column(
        String(40), nullable=False, default=DEFAULT_AUTHOR_ROLE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )


class RecipientRecord(Base):
    __tablename__ = "recipients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    district: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
