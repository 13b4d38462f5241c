"""Driver records that hold copies of document state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return the current time in UTC."""

    return datetime.now(UTC)


class DriverProfile(SQLModel, table=True):
    """Driver profile holding the profile-source documents and aggregate fields."""

    __tablename__ = "driver_profiles"

    id: str = Field(primary_key=True, description="Driver identifier.")
    name: str | None = Field(default=None, nullable=True)
    documents: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    verification_status: str = Field(default="pending", index=True, nullable=False)
    is_verified: bool = Field(default=False, nullable=False)
    verified_documents_count: int = Field(default=0, nullable=False)
    total_documents_count: int = Field(default=0, nullable=False)
    version: int = Field(
        default=0,
        nullable=False,
        description="Incremented by every canonical write; used for optimistic checks.",
    )
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class VerificationRequest(SQLModel, table=True):
    """Append-only verification request carrying the verification-source documents."""

    __tablename__ = "verification_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    driver_id: str = Field(foreign_key="driver_profiles.id", index=True, nullable=False)
    status: str = Field(default="pending", index=True, nullable=False)
    documents: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    requested_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class DriverListing(SQLModel, table=True):
    """Mirror of the aggregate used by driver listings and live status views."""

    __tablename__ = "driver_listings"

    driver_id: str = Field(foreign_key="driver_profiles.id", primary_key=True)
    verification_status: str = Field(default="pending", index=True, nullable=False)
    is_verified: bool = Field(default=False, nullable=False)
    can_start_working: bool = Field(default=False, nullable=False)
    document_summary: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


__all__ = ["DriverListing", "DriverProfile", "VerificationRequest"]
