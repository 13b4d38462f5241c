"""Audit trail for document decisions, uploads and resyncs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DocumentAuditEntry(SQLModel, table=True):
    """One canonical write, stored in the same transaction as the write itself."""

    __tablename__ = "document_audit_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    driver_id: str = Field(foreign_key="driver_profiles.id", index=True, nullable=False)
    document_type: str | None = Field(default=None, index=True, nullable=True)
    action: str = Field(nullable=False, index=True)
    actor: str | None = Field(default=None, nullable=True)
    summary: str = Field(default="", nullable=False)
    version: int = Field(default=0, nullable=False)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)


__all__ = ["DocumentAuditEntry"]
