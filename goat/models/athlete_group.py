"""Athlete group (training group) and its members."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goat.models.base import Base, utcnow


class AthleteGroup(Base):
    """Training group with an optional maximum capacity (NULL = unbounded)."""

    __tablename__ = "athlete_groups"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_athlete_group_org_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    max_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    enable_waitlist: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    members = relationship(
        "AthleteGroupMember", back_populates="group", cascade="all, delete-orphan"
    )


class AthleteGroupMember(Base):
    """Athlete registered in a group."""

    __tablename__ = "athlete_group_members"
    __table_args__ = (UniqueConstraint("group_id", "athlete_id", name="uq_athlete_group_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("athlete_groups.id"), nullable=False, index=True)
    athlete_id: Mapped[int] = mapped_column(ForeignKey("athletes.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    group: Mapped["AthleteGroup"] = relationship("AthleteGroup", back_populates="members")
