"""Training session and its individually assigned athletes."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goat.models.base import Base, utcnow


class TrainingSession(Base):
    """Scheduled training session with an optional maximum capacity."""

    __tablename__ = "training_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    max_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    enable_waitlist: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    athlete_group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("athlete_groups.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending, confirmed, completed, cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    athletes = relationship(
        "TrainingSessionAthlete", back_populates="session", cascade="all, delete-orphan"
    )


class TrainingSessionAthlete(Base):
    """Athlete assigned to a training session."""

    __tablename__ = "training_session_athletes"
    __table_args__ = (UniqueConstraint("session_id", "athlete_id", name="uq_training_session_athlete"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("training_sessions.id"), nullable=False, index=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    session: Mapped["TrainingSession"] = relationship("TrainingSession", back_populates="athletes")
