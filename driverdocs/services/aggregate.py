"""Aggregate verification status and its consistent persistence."""

from __future__ import annotations

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any, Callable

from ..observability import metrics_registry
from ..utils.errors import PersistTimeout, StaleWrite, StoreIOError
from ..utils.logging import get_logger
from .merge import DocumentStatus
from .reconcile import DriverDocumentSet

if TYPE_CHECKING:
    from .store import AuditRecord, DocumentStore

LOGGER = get_logger("aggregate")


class OverallStatus:
    """Labels written to ``verificationStatus`` on the driver records."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"


@dataclass(frozen=True, slots=True)
class DriverAggregateStatus:
    """Summary derived from a document set; never edited directly."""

    all_approved: bool
    any_rejected: bool
    pending_count: int
    approved_count: int = 0
    rejected_count: int = 0
    uploaded_count: int = 0
    total_count: int = 0

    @property
    def is_verified(self) -> bool:
        return self.all_approved

    @property
    def missing_count(self) -> int:
        return self.pending_count - self.uploaded_count

    @property
    def verification_status(self) -> str:
        if self.all_approved:
            return OverallStatus.APPROVED
        if self.any_rejected:
            return OverallStatus.REJECTED
        if self.missing_count == self.total_count:
            return OverallStatus.PENDING
        return OverallStatus.PENDING_VERIFICATION

    def to_dict(self) -> dict[str, Any]:
        return {
            "allApproved": self.all_approved,
            "anyRejected": self.any_rejected,
            "pendingCount": self.pending_count,
            "approvedCount": self.approved_count,
            "rejectedCount": self.rejected_count,
            "uploadedCount": self.uploaded_count,
            "totalCount": self.total_count,
            "verificationStatus": self.verification_status,
            "isVerified": self.is_verified,
        }


def recompute(document_set: DriverDocumentSet) -> DriverAggregateStatus:
    """Derive the aggregate from ``document_set``; replaying it is always safe."""

    statuses = [doc.status for doc in document_set.values()]
    approved = statuses.count(DocumentStatus.APPROVED)
    rejected = statuses.count(DocumentStatus.REJECTED)
    uploaded = statuses.count(DocumentStatus.UPLOADED)
    total = len(statuses)
    return DriverAggregateStatus(
        all_approved=total > 0 and approved == total,
        any_rejected=rejected > 0,
        pending_count=total - approved - rejected,
        approved_count=approved,
        rejected_count=rejected,
        uploaded_count=uploaded,
        total_count=total,
    )


def _late_write_logger(driver_id: str) -> Callable[[Future], None]:
    """Return a callback reporting how a write that already timed out ended."""

    def _log(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error(
                "timed-out write for driver=%s failed late: %s", driver_id, exc
            )
        else:
            LOGGER.warning(
                "timed-out write for driver=%s landed late as version=%s",
                driver_id,
                future.result(),
            )

    return _log


class AggregateSyncEngine:
    """Write a document set and its aggregate to every denormalized location.

    The store performs the write as a single transaction guarded by the
    driver's version; this class adds the timeout and records outcomes.
    """

    def __init__(
        self,
        store: "DocumentStore",
        *,
        timeout_s: float | None = None,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._timeout_s = timeout_s
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="driverdocs-persist"
        )

    def recompute(self, document_set: DriverDocumentSet) -> DriverAggregateStatus:
        return recompute(document_set)

    def persist(
        self,
        driver_id: str,
        status: DriverAggregateStatus,
        document_set: DriverDocumentSet,
        *,
        expected_version: int,
        audit: "AuditRecord | None" = None,
        open_request: bool = False,
        timeout_s: float | None = None,
    ) -> int:
        """Persist ``document_set`` and ``status``; return the new version.

        Raises :class:`StaleWrite` when another writer got there first and
        :class:`PersistTimeout` when the store did not answer in time. After a
        timeout the write may still land, so callers must re-read before
        retrying.
        """

        timeout = timeout_s if timeout_s is not None else self._timeout_s
        LOGGER.debug(
            "persisting driver=%s expected_version=%s status=%s",
            driver_id,
            expected_version,
            status.verification_status,
        )
        started = perf_counter()
        try:
            if timeout is None:
                version = self._store.write_canonical_state(
                    driver_id,
                    document_set,
                    status,
                    expected_version,
                    audit=audit,
                    open_request=open_request,
                )
            else:
                # copy_context keeps the request id visible to the audit writer
                future = self._executor.submit(
                    contextvars.copy_context().run,
                    self._store.write_canonical_state,
                    driver_id,
                    document_set,
                    status,
                    expected_version,
                    audit=audit,
                    open_request=open_request,
                )
                try:
                    version = future.result(timeout=timeout)
                except FutureTimeout as exc:
                    if not future.cancel():
                        future.add_done_callback(_late_write_logger(driver_id))
                    raise PersistTimeout(
                        f"Persisting driver {driver_id} exceeded {timeout:.2f}s",
                        extra={"driver_id": driver_id, "timeout_s": timeout},
                    ) from exc
        except StaleWrite:
            metrics_registry.record_sync("stale_write")
            raise
        except PersistTimeout:
            metrics_registry.record_sync("timeout")
            raise
        except StoreIOError:
            metrics_registry.record_sync("store_error")
            raise

        metrics_registry.record_sync("persisted", perf_counter() - started)
        LOGGER.info(
            "driver=%s persisted version=%s status=%s (%s/%s approved)",
            driver_id,
            version,
            status.verification_status,
            status.approved_count,
            status.total_count,
        )
        return version

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = [
    "AggregateSyncEngine",
    "DriverAggregateStatus",
    "OverallStatus",
    "recompute",
]
