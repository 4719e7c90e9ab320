"""Organization (tenant) and per-organization feature toggles."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goat.models.base import Base, utcnow


class Organization(Base):
    """Tenant boundary. Every domain row carries an organization_id."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    users = relationship("User", back_populates="organization", cascade="all, delete-orphan")
    features = relationship(
        "OrganizationFeatureSetting", back_populates="organization", cascade="all, delete-orphan"
    )


class OrganizationFeatureSetting(Base):
    """Explicit feature toggle. A missing row means the feature is enabled."""

    __tablename__ = "organization_features"
    __table_args__ = (UniqueConstraint("organization_id", "feature", name="uq_org_feature"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    feature: Mapped[str] = mapped_column(String(32), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="features")
