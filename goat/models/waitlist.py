"""Waitlist entry for a training session or athlete group."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from goat.models.base import Base, utcnow


class WaitlistEntry(Base):
    """Athlete waiting for a slot. (reference_type, reference_id) points at the capacity holder."""

    __tablename__ = "waitlist_entries"
    __table_args__ = (
        # At most one waiting entry per athlete and holder
        Index(
            "uq_waitlist_active_entry",
            "athlete_id",
            "reference_type",
            "reference_id",
            unique=True,
            sqlite_where=text("status = 'waiting'"),
            postgresql_where=text("status = 'waiting'"),
        ),
        Index("ix_waitlist_reference", "reference_type", "reference_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id"), nullable=False, index=True)
    reference_type: Mapped[str] = mapped_column(String(32), nullable=False)  # training_session | athlete_group
    reference_id: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")  # high, medium, low
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="waiting")  # waiting, promoted, cancelled, expired
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True)
    promoted_by: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True)
    promoted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
