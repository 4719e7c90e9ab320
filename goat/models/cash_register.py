"""Daily cash register and its movements."""
from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goat.models.base import Base, utcnow


class CashRegister(Base):
    """One register per organization and day. Balances are in minor currency units."""

    __tablename__ = "cash_registers"
    __table_args__ = (UniqueConstraint("organization_id", "date", name="uq_cash_register_org_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")  # open, closed
    opening_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closing_balance: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    opened_by: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True)
    closed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True)
    opened_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    closed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    movements = relationship(
        "CashMovement", back_populates="cash_register", cascade="all, delete-orphan"
    )


class CashMovement(Base):
    """Cash in or out of a register. amount is always positive; type gives the sign."""

    __tablename__ = "cash_movements"
    __table_args__ = (
        # NULL reference_id (manual movements) never collides
        UniqueConstraint("reference_type", "reference_id", name="uq_cash_movement_reference"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cash_register_id: Mapped[int] = mapped_column(ForeignKey("cash_registers.id"), nullable=False, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # income, expense
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recorded_by: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

    cash_register: Mapped["CashRegister"] = relationship("CashRegister", back_populates="movements")
