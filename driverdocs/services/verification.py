"""Coordinate reconciliation, decisions and aggregate sync for one driver.

Every mutation follows the same loop: read both sources, reconcile, apply
the change to the canonical set, recompute the aggregate and persist it
against the version that was read. A stale write or a timeout restarts the
loop from a fresh read; the same write is never blindly replayed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable

from ..config import Settings, get_settings
from ..observability import metrics_registry
from ..utils.errors import (
    PersistTimeout,
    StaleWrite,
    SyncRetriesExhausted,
    VerificationEngineError,
)
from ..utils.logging import get_logger
from .aggregate import AggregateSyncEngine, DriverAggregateStatus, recompute
from .aliases import DocumentType, resolve_document_type
from .merge import CanonicalDocument
from .reconcile import DriverDocumentSet, reconcile
from .state_machine import (
    Decision,
    ReuploadPolicy,
    apply_decision,
    apply_upload,
    decision_already_applied,
)
from .store import AuditRecord, DocumentStore, DriverSnapshot, SQLDocumentStore

LOGGER = get_logger("verification")

# The flag is set once an earlier attempt timed out and may have committed.
# Returning no audit record means the change is already stored.
Mutation = Callable[
    [DriverDocumentSet, bool], tuple[DriverDocumentSet, "AuditRecord | None"]
]


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    """Result of one successful canonical write."""

    driver_id: str
    document_set: DriverDocumentSet
    aggregate: DriverAggregateStatus
    previous_status: str
    version: int
    attempts: int


@dataclass(frozen=True, slots=True)
class DocumentOutcome:
    """Result of a decision or upload on a single document."""

    document_type: DocumentType
    previous: CanonicalDocument
    document: CanonicalDocument
    sync: SyncOutcome

    @property
    def changed(self) -> bool:
        return self.previous != self.document


@dataclass(frozen=True, slots=True)
class BulkSyncResult:
    """Per-driver line of a bulk resync report."""

    driver_id: str
    success: bool
    old_status: str | None = None
    new_status: str | None = None
    approved_documents: int = 0
    total_documents: int = 0
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "driverId": self.driver_id,
            "success": self.success,
            "oldStatus": self.old_status,
            "newStatus": self.new_status,
            "approvedDocuments": self.approved_documents,
            "totalDocuments": self.total_documents,
            "error": self.error,
        }


class VerificationService:
    """Admin-facing operations over the reconciliation engine."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        sync_engine: AggregateSyncEngine | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._sync = sync_engine or AggregateSyncEngine(
            store,
            timeout_s=self._settings.persist_timeout_s,
            max_workers=self._settings.persist_workers,
        )

    @property
    def store(self) -> DocumentStore:
        return self._store

    def close(self) -> None:
        self._sync.close()

    def reconciled_documents(self, driver_id: str) -> tuple[DriverDocumentSet, DriverSnapshot]:
        """Return the canonical set as currently derivable from the store."""

        snapshot = self._store.load_snapshot(driver_id)
        return (
            reconcile(snapshot.profile_documents, snapshot.verification_documents),
            snapshot,
        )

    def decide(
        self,
        driver_id: str,
        document_type: DocumentType | str,
        decision: Decision,
    ) -> DocumentOutcome:
        """Apply an admin decision to one document and sync the aggregate."""

        doc_type = _as_document_type(document_type)
        captured: dict[str, CanonicalDocument] = {}

        def mutate(
            current: DriverDocumentSet, after_timeout: bool
        ) -> tuple[DriverDocumentSet, AuditRecord | None]:
            previous = current[doc_type]
            if after_timeout and decision_already_applied(previous, decision):
                captured.setdefault("previous", previous)
                captured["document"] = previous
                return current, None
            updated = apply_decision(previous, decision)
            captured["previous"], captured["document"] = previous, updated
            changed = updated != previous
            detail: dict[str, Any] = {
                "changed": changed,
                "from": previous.status.value,
                "to": updated.status.value,
            }
            if updated.rejection_reason:
                detail["reason"] = updated.rejection_reason
            if decision.comments:
                detail["comments"] = decision.comments
            summary = (
                f"{doc_type.value} {updated.status.value}"
                if changed
                else f"{doc_type.value} {decision.action.value} replayed without changes"
            )
            audit = AuditRecord(
                action=decision.action.value,
                summary=summary,
                actor=decision.reviewer,
                document_type=doc_type.value,
                detail=detail,
            )
            return current.replace(doc_type, updated), audit

        sync = self._run(driver_id, mutate)
        LOGGER.info(
            "driver=%s %s %s -> %s",
            driver_id,
            doc_type.value,
            decision.action.value,
            captured["document"].status.value,
        )
        return DocumentOutcome(
            document_type=doc_type,
            previous=captured["previous"],
            document=captured["document"],
            sync=sync,
        )

    def register_upload(
        self,
        driver_id: str,
        document_type: DocumentType | str,
        url: str,
        *,
        filename: str | None = None,
        uploaded_at: datetime | None = None,
        actor: str | None = None,
    ) -> DocumentOutcome:
        """Record a (re-)submission and open a verification request if needed."""

        doc_type = _as_document_type(document_type)
        policy = ReuploadPolicy(self._settings.approved_reupload_policy)
        captured: dict[str, CanonicalDocument] = {}

        def mutate(
            current: DriverDocumentSet, after_timeout: bool
        ) -> tuple[DriverDocumentSet, AuditRecord]:
            previous = current[doc_type]
            updated = apply_upload(
                previous, url, filename=filename, uploaded_at=uploaded_at, policy=policy
            )
            captured["previous"], captured["document"] = previous, updated
            audit = AuditRecord(
                action="upload",
                summary=f"{doc_type.value} submitted",
                actor=actor,
                document_type=doc_type.value,
                detail={"from": previous.status.value, "filename": filename},
            )
            return current.replace(doc_type, updated), audit

        sync = self._run(driver_id, mutate, open_request=True)
        return DocumentOutcome(
            document_type=doc_type,
            previous=captured["previous"],
            document=captured["document"],
            sync=sync,
        )

    def resync(self, driver_id: str, *, actor: str | None = None) -> SyncOutcome:
        """Recompute and rewrite the aggregate from the reconciled documents."""

        def mutate(
            current: DriverDocumentSet, after_timeout: bool
        ) -> tuple[DriverDocumentSet, AuditRecord]:
            return current, AuditRecord(
                action="resync",
                summary="Verification status synchronised",
                actor=actor,
            )

        return self._run(driver_id, mutate)

    def resync_all(self, *, actor: str | None = None) -> list[BulkSyncResult]:
        """Resync every driver; one driver failing does not stop the others."""

        results: list[BulkSyncResult] = []
        for driver_id in self._store.list_driver_ids():
            try:
                outcome = self.resync(driver_id, actor=actor)
            except VerificationEngineError as exc:
                LOGGER.error("resync failed for driver=%s: %s", driver_id, exc)
                results.append(
                    BulkSyncResult(driver_id=driver_id, success=False, error=exc.to_detail())
                )
                continue
            results.append(
                BulkSyncResult(
                    driver_id=driver_id,
                    success=True,
                    old_status=outcome.previous_status,
                    new_status=outcome.aggregate.verification_status,
                    approved_documents=outcome.aggregate.approved_count,
                    total_documents=outcome.aggregate.total_count,
                )
            )
        LOGGER.info(
            "bulk resync finished: %s ok, %s failed",
            sum(1 for item in results if item.success),
            sum(1 for item in results if not item.success),
        )
        return results

    def _run(
        self,
        driver_id: str,
        mutate: Mutation,
        *,
        open_request: bool = False,
    ) -> SyncOutcome:
        max_attempts = self._settings.persist_max_attempts
        last_error: VerificationEngineError | None = None
        last_set: DriverDocumentSet | None = None
        timed_out = False

        for attempt in range(1, max_attempts + 1):
            snapshot = self._store.load_snapshot(driver_id)
            current = reconcile(snapshot.profile_documents, snapshot.verification_documents)
            last_set = current
            updated, audit = mutate(current, timed_out)
            aggregate = recompute(updated)
            if audit is None:
                LOGGER.info(
                    "driver=%s timed-out write had landed as version=%s",
                    driver_id,
                    snapshot.version,
                )
                return SyncOutcome(
                    driver_id=driver_id,
                    document_set=updated,
                    aggregate=aggregate,
                    previous_status=snapshot.verification_status,
                    version=snapshot.version,
                    attempts=attempt,
                )
            try:
                version = self._sync.persist(
                    driver_id,
                    aggregate,
                    updated,
                    expected_version=snapshot.version,
                    audit=audit,
                    open_request=open_request,
                )
            except (StaleWrite, PersistTimeout) as exc:
                last_error = exc
                timed_out = timed_out or isinstance(exc, PersistTimeout)
                LOGGER.warning(
                    "driver=%s attempt %s/%s failed with %s; re-reading",
                    driver_id,
                    attempt,
                    max_attempts,
                    exc.code,
                )
                continue
            return SyncOutcome(
                driver_id=driver_id,
                document_set=updated,
                aggregate=aggregate,
                previous_status=snapshot.verification_status,
                version=version,
                attempts=attempt,
            )

        if last_error is None:
            raise ValueError("persist_max_attempts must be at least 1")
        metrics_registry.record_sync("exhausted")
        raise SyncRetriesExhausted(
            f"Could not persist driver {driver_id} after {max_attempts} attempts",
            last_error=last_error,
            last_state=last_set.to_dict() if last_set is not None else None,
            attempts=max_attempts,
        )


def _as_document_type(value: DocumentType | str) -> DocumentType:
    if isinstance(value, DocumentType):
        return value
    return resolve_document_type(value)


@lru_cache()
def get_verification_service() -> VerificationService:
    """Return the process-wide service bound to the configured database."""

    return VerificationService(SQLDocumentStore())


def reset_verification_service() -> None:
    if get_verification_service.cache_info().currsize:
        get_verification_service().close()
    get_verification_service.cache_clear()


__all__ = [
    "BulkSyncResult",
    "DocumentOutcome",
    "SyncOutcome",
    "VerificationService",
    "get_verification_service",
    "reset_verification_service",
]
