"""Document store boundary and its SQLModel implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping, Protocol

from sqlalchemy import desc, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from sqlmodel import select as sqlmodel_select

from ..middleware import get_request_id
from ..models import DocumentAuditEntry, DriverListing, DriverProfile, VerificationRequest
from ..utils.errors import DriverNotFound, StaleWrite, StoreIOError
from ..utils.logging import get_logger
from .aggregate import DriverAggregateStatus
from .reconcile import DriverDocumentSet

LOGGER = get_logger("store")


@dataclass(frozen=True, slots=True)
class DriverSnapshot:
    """Both source records of one driver, read together with the version."""

    driver_id: str
    profile_documents: Mapping[str, Any]
    verification_documents: Mapping[str, Any] | None
    version: int
    verification_status: str = "pending"


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """Audit information written alongside a canonical state change."""

    action: str
    summary: str
    actor: str | None = None
    document_type: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    """Operations the engine needs from whatever holds the driver records."""

    def get_profile_documents(self, driver_id: str) -> Mapping[str, Any]: ...

    def get_latest_verification_request(self, driver_id: str) -> Mapping[str, Any] | None: ...

    def load_snapshot(self, driver_id: str) -> DriverSnapshot: ...

    def list_driver_ids(self) -> list[str]: ...

    def list_audit_entries(self, driver_id: str) -> list[DocumentAuditEntry]: ...

    def write_canonical_state(
        self,
        driver_id: str,
        document_set: DriverDocumentSet,
        status: DriverAggregateStatus,
        expected_version: int,
        *,
        audit: AuditRecord | None = None,
        open_request: bool = False,
    ) -> int: ...


_PROFILES = DriverProfile.__table__  # type: ignore[attr-defined]
_REQUESTS = VerificationRequest.__table__  # type: ignore[attr-defined]
_LISTINGS = DriverListing.__table__  # type: ignore[attr-defined]
_AUDIT = DocumentAuditEntry.__table__  # type: ignore[attr-defined]

# A request whose review has concluded; new submissions open a fresh one.
_CLOSED_REQUEST_STATUSES = frozenset({"approved", "rejected"})


def _document_summary(status: DriverAggregateStatus) -> dict[str, int]:
    return {
        "total": status.total_count,
        "verified": status.approved_count,
        "rejected": status.rejected_count,
        "pending": status.pending_count,
    }


class SQLDocumentStore:
    """Keep driver records in SQL tables; every canonical write is one transaction."""

    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is not None:
            return self._engine
        from ..database import get_engine

        return get_engine()

    # -- reads -----------------------------------------------------------------

    def _latest_request(self, session: Session, driver_id: str) -> VerificationRequest | None:
        statement = (
            sqlmodel_select(VerificationRequest)
            .where(VerificationRequest.driver_id == driver_id)
            .order_by(
                desc(_REQUESTS.c.requested_at),
                desc(_REQUESTS.c.id),
            )
        )
        return session.exec(statement).first()

    def get_profile_documents(self, driver_id: str) -> Mapping[str, Any]:
        return self.load_snapshot(driver_id).profile_documents

    def get_latest_verification_request(self, driver_id: str) -> Mapping[str, Any] | None:
        return self.load_snapshot(driver_id).verification_documents

    def load_snapshot(self, driver_id: str) -> DriverSnapshot:
        try:
            with Session(self.engine) as session:
                profile = session.get(DriverProfile, driver_id)
                if profile is None:
                    raise DriverNotFound(
                        f"Driver {driver_id} not found", extra={"driver_id": driver_id}
                    )
                request = self._latest_request(session, driver_id)
                return DriverSnapshot(
                    driver_id=driver_id,
                    profile_documents=dict(profile.documents or {}),
                    verification_documents=(
                        dict(request.documents or {}) if request is not None else None
                    ),
                    version=profile.version,
                    verification_status=profile.verification_status,
                )
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to read driver {driver_id}") from exc

    def list_driver_ids(self) -> list[str]:
        try:
            with Session(self.engine) as session:
                statement = sqlmodel_select(DriverProfile.id).order_by(_PROFILES.c.id)
                return list(session.exec(statement))
        except SQLAlchemyError as exc:
            raise StoreIOError("Failed to list drivers") from exc

    def list_audit_entries(self, driver_id: str) -> list[DocumentAuditEntry]:
        try:
            with Session(self.engine) as session:
                statement = (
                    sqlmodel_select(DocumentAuditEntry)
                    .where(DocumentAuditEntry.driver_id == driver_id)
                    .order_by(_AUDIT.c.created_at, _AUDIT.c.id)
                )
                return list(session.exec(statement))
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to read audit trail for driver {driver_id}") from exc

    # -- seeding helpers used by operators and tests ---------------------------

    def add_driver(
        self,
        driver_id: str,
        *,
        name: str | None = None,
        documents: Mapping[str, Any] | None = None,
    ) -> DriverProfile:
        with Session(self.engine) as session:
            profile = DriverProfile(id=driver_id, name=name, documents=dict(documents or {}))
            session.add(profile)
            session.commit()
            session.refresh(profile)
            return profile

    def add_verification_request(
        self,
        driver_id: str,
        documents: Mapping[str, Any],
        *,
        status: str = "pending",
        requested_at: datetime | None = None,
    ) -> VerificationRequest:
        with Session(self.engine) as session:
            request = VerificationRequest(
                driver_id=driver_id,
                documents=dict(documents),
                status=status,
                requested_at=requested_at or datetime.now(UTC),
            )
            session.add(request)
            session.commit()
            session.refresh(request)
            return request

    # -- canonical write -------------------------------------------------------

    def write_canonical_state(
        self,
        driver_id: str,
        document_set: DriverDocumentSet,
        status: DriverAggregateStatus,
        expected_version: int,
        *,
        audit: AuditRecord | None = None,
        open_request: bool = False,
    ) -> int:
        """Update the profile, latest request, listing and audit trail together.

        The profile row is updated with ``version = expected_version`` in the
        WHERE clause; if no row matches, nothing is written and
        :class:`StaleWrite` is raised.
        """

        now = datetime.now(UTC)
        new_version = expected_version + 1
        try:
            with self.engine.begin() as connection:
                current = connection.execute(
                    select(_PROFILES.c.documents).where(_PROFILES.c.id == driver_id)
                ).first()
                if current is None:
                    raise DriverNotFound(
                        f"Driver {driver_id} not found", extra={"driver_id": driver_id}
                    )
                profile_documents = {**(current.documents or {}), **document_set.profile_payload()}
                result = connection.execute(
                    update(_PROFILES)
                    .where(
                        _PROFILES.c.id == driver_id,
                        _PROFILES.c.version == expected_version,
                    )
                    .values(
                        documents=profile_documents,
                        verification_status=status.verification_status,
                        is_verified=status.is_verified,
                        verified_documents_count=status.approved_count,
                        total_documents_count=status.total_count,
                        version=new_version,
                        updated_at=now,
                    )
                )
                if result.rowcount != 1:
                    actual = connection.execute(
                        select(_PROFILES.c.version).where(_PROFILES.c.id == driver_id)
                    ).scalar()
                    raise StaleWrite(
                        f"Driver {driver_id} changed concurrently",
                        extra={
                            "driver_id": driver_id,
                            "expected_version": expected_version,
                            "actual_version": actual,
                        },
                    )

                self._write_request(connection, driver_id, document_set, status, now, open_request)
                self._write_listing(connection, driver_id, status, now)
                if audit is not None:
                    self._write_audit(connection, driver_id, audit, new_version, now)
        except SQLAlchemyError as exc:
            LOGGER.exception("canonical write failed for driver=%s", driver_id)
            raise StoreIOError(
                f"Failed to persist canonical state for driver {driver_id}",
                extra={"driver_id": driver_id},
            ) from exc
        return new_version

    def _write_request(
        self,
        connection: Connection,
        driver_id: str,
        document_set: DriverDocumentSet,
        status: DriverAggregateStatus,
        now: datetime,
        open_request: bool,
    ) -> None:
        latest = connection.execute(
            select(_REQUESTS.c.id, _REQUESTS.c.documents, _REQUESTS.c.status)
            .where(_REQUESTS.c.driver_id == driver_id)
            .order_by(desc(_REQUESTS.c.requested_at), desc(_REQUESTS.c.id))
            .limit(1)
        ).first()
        payload = document_set.verification_payload()
        closed = latest is not None and latest.status in _CLOSED_REQUEST_STATUSES
        if latest is None or (open_request and closed):
            if not open_request:
                return
            connection.execute(
                insert(_REQUESTS).values(
                    driver_id=driver_id,
                    status="pending",
                    documents=payload,
                    requested_at=now,
                    updated_at=now,
                )
            )
            return
        connection.execute(
            update(_REQUESTS)
            .where(_REQUESTS.c.id == latest.id)
            .values(
                documents={**(latest.documents or {}), **payload},
                status=status.verification_status,
                updated_at=now,
            )
        )

    def _write_listing(
        self,
        connection: Connection,
        driver_id: str,
        status: DriverAggregateStatus,
        now: datetime,
    ) -> None:
        values = {
            "verification_status": status.verification_status,
            "is_verified": status.is_verified,
            "can_start_working": status.is_verified,
            "document_summary": _document_summary(status),
            "updated_at": now,
        }
        result = connection.execute(
            update(_LISTINGS).where(_LISTINGS.c.driver_id == driver_id).values(**values)
        )
        if result.rowcount == 0:
            connection.execute(insert(_LISTINGS).values(driver_id=driver_id, **values))

    def _write_audit(
        self,
        connection: Connection,
        driver_id: str,
        audit: AuditRecord,
        version: int,
        now: datetime,
    ) -> None:
        detail = dict(audit.detail)
        request_id = get_request_id()
        if request_id:
            detail.setdefault("request_id", request_id)
        connection.execute(
            insert(_AUDIT).values(
                driver_id=driver_id,
                document_type=audit.document_type,
                action=audit.action,
                actor=audit.actor,
                summary=audit.summary,
                version=version,
                detail=detail,
                created_at=now,
            )
        )


__all__ = [
    "AuditRecord",
    "DocumentStore",
    "DriverSnapshot",
    "SQLDocumentStore",
]
