"""Driver document review, resync and audit endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from ..services.aggregate import DriverAggregateStatus, recompute
from ..services.merge import CanonicalDocument
from ..services.reconcile import DriverDocumentSet
from ..services.state_machine import parse_decision
from ..services.verification import (
    DocumentOutcome,
    VerificationService,
    get_verification_service,
)
from ..utils.errors import (
    DriverNotFound,
    InvalidTransition,
    PersistTimeout,
    StaleWrite,
    StoreIOError,
    SyncRetriesExhausted,
    ValidationError,
    VerificationEngineError,
)
from ..utils.logging import get_logger

LOGGER = get_logger("api.drivers")

router = APIRouter(prefix="/api", tags=["drivers"])

_ERROR_STATUS: tuple[tuple[type[VerificationEngineError], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DriverNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (SyncRetriesExhausted, status.HTTP_409_CONFLICT),
    (StaleWrite, status.HTTP_409_CONFLICT),
    (PersistTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (StoreIOError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error(exc: VerificationEngineError) -> HTTPException:
    """Translate an engine error into an HTTP error carrying its detail."""

    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if status_code >= 500:
        LOGGER.error("%s: %s", exc.code, exc.message)
    return HTTPException(status_code=status_code, detail=exc.to_detail())


class CanonicalDocumentPayload(BaseModel):
    """Serialised canonical document."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    status: str
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")
    verified: bool
    rejection_reason: str | None = Field(default=None, alias="rejectionReason")
    filename: str | None = None
    reviewed_at: datetime | None = Field(default=None, alias="reviewedAt")
    reviewed_by: str | None = Field(default=None, alias="reviewedBy")

    @classmethod
    def from_document(cls, document: CanonicalDocument) -> "CanonicalDocumentPayload":
        return cls.model_validate(document.to_dict())


class AggregatePayload(BaseModel):
    """Serialised aggregate status of a driver."""

    model_config = ConfigDict(populate_by_name=True)

    all_approved: bool = Field(alias="allApproved")
    any_rejected: bool = Field(alias="anyRejected")
    pending_count: int = Field(alias="pendingCount")
    approved_count: int = Field(alias="approvedCount")
    rejected_count: int = Field(alias="rejectedCount")
    uploaded_count: int = Field(alias="uploadedCount")
    total_count: int = Field(alias="totalCount")
    verification_status: str = Field(alias="verificationStatus")
    is_verified: bool = Field(alias="isVerified")

    @classmethod
    def from_status(cls, aggregate: DriverAggregateStatus) -> "AggregatePayload":
        return cls.model_validate(aggregate.to_dict())


def _documents_payload(document_set: DriverDocumentSet) -> dict[str, CanonicalDocumentPayload]:
    return {
        doc_type.value: CanonicalDocumentPayload.from_document(document)
        for doc_type, document in document_set.items()
    }


class DocumentSetResponse(BaseModel):
    """Reconciled documents of one driver together with the derived aggregate."""

    model_config = ConfigDict(populate_by_name=True)

    driver_id: str = Field(alias="driverId")
    version: int
    stored_status: str = Field(alias="storedStatus")
    documents: dict[str, CanonicalDocumentPayload]
    aggregate: AggregatePayload


class DecisionRequest(BaseModel):
    """Admin decision body; ``status`` and ``rejectionReason`` are accepted as aliases."""

    model_config = ConfigDict(populate_by_name=True)

    decision: str | None = None
    status: str | None = None
    reason: str | None = None
    rejection_reason: str | None = Field(default=None, alias="rejectionReason")
    reviewer: str | None = Field(default=None, max_length=200)
    comments: str | None = Field(default=None, max_length=2000)


class UploadRequest(BaseModel):
    """Body registering a newly submitted document file."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    filename: str | None = None
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")
    actor: str | None = None


class DocumentChangeResponse(BaseModel):
    """Result of a decision or upload on one document."""

    model_config = ConfigDict(populate_by_name=True)

    driver_id: str = Field(alias="driverId")
    document_type: str = Field(alias="documentType")
    changed: bool
    previous_status: str = Field(alias="previousStatus")
    document: CanonicalDocumentPayload
    aggregate: AggregatePayload
    version: int
    attempts: int

    @classmethod
    def from_outcome(cls, driver_id: str, outcome: DocumentOutcome) -> "DocumentChangeResponse":
        return cls(
            driver_id=driver_id,
            document_type=outcome.document_type.value,
            changed=outcome.changed,
            previous_status=outcome.previous.status.value,
            document=CanonicalDocumentPayload.from_document(outcome.document),
            aggregate=AggregatePayload.from_status(outcome.sync.aggregate),
            version=outcome.sync.version,
            attempts=outcome.sync.attempts,
        )


class ResyncResponse(BaseModel):
    """Aggregate written by a single-driver resync."""

    model_config = ConfigDict(populate_by_name=True)

    driver_id: str = Field(alias="driverId")
    old_status: str = Field(alias="oldStatus")
    aggregate: AggregatePayload
    version: int


class BulkResyncItem(BaseModel):
    """One line of the bulk resync report."""

    model_config = ConfigDict(populate_by_name=True)

    driver_id: str = Field(alias="driverId")
    success: bool
    old_status: str | None = Field(default=None, alias="oldStatus")
    new_status: str | None = Field(default=None, alias="newStatus")
    approved_documents: int = Field(default=0, alias="approvedDocuments")
    total_documents: int = Field(default=0, alias="totalDocuments")
    error: dict[str, Any] | None = None


class BulkResyncResponse(BaseModel):
    """Summary and per-driver results of a bulk resync."""

    total: int
    succeeded: int
    failed: int
    results: list[BulkResyncItem] = Field(default_factory=list)


class AuditEntryPayload(BaseModel):
    """Serialised audit entry for document decisions, uploads and resyncs."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    document_type: str | None = None
    action: str
    actor: str | None = None
    summary: str
    version: int
    detail: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


@router.get("/drivers/{driver_id}/documents", response_model=DocumentSetResponse)
def get_driver_documents(
    driver_id: str,
    *,
    service: VerificationService = Depends(get_verification_service),
) -> DocumentSetResponse:
    """Return the reconciled document set without writing anything."""

    try:
        document_set, snapshot = service.reconciled_documents(driver_id)
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    return DocumentSetResponse(
        driver_id=driver_id,
        version=snapshot.version,
        stored_status=snapshot.verification_status,
        documents=_documents_payload(document_set),
        aggregate=AggregatePayload.from_status(recompute(document_set)),
    )


@router.post(
    "/drivers/{driver_id}/documents/{document_type}/decision",
    response_model=DocumentChangeResponse,
)
def decide_document(
    driver_id: str,
    document_type: str,
    request: DecisionRequest,
    *,
    service: VerificationService = Depends(get_verification_service),
) -> DocumentChangeResponse:
    """Approve or reject one document and sync the driver's aggregate."""

    try:
        decision = parse_decision(request.model_dump(by_alias=True, exclude_none=True))
        outcome = service.decide(driver_id, document_type, decision)
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    return DocumentChangeResponse.from_outcome(driver_id, outcome)


@router.post(
    "/drivers/{driver_id}/documents/{document_type}/upload",
    response_model=DocumentChangeResponse,
)
def upload_document(
    driver_id: str,
    document_type: str,
    request: UploadRequest,
    *,
    service: VerificationService = Depends(get_verification_service),
) -> DocumentChangeResponse:
    """Register a new submission URL for one document."""

    try:
        outcome = service.register_upload(
            driver_id,
            document_type,
            request.url,
            filename=request.filename,
            uploaded_at=request.uploaded_at,
            actor=request.actor,
        )
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    return DocumentChangeResponse.from_outcome(driver_id, outcome)


@router.post("/drivers/resync", response_model=BulkResyncResponse)
def resync_all_drivers(
    *,
    actor: str | None = Query(default=None, max_length=200),
    service: VerificationService = Depends(get_verification_service),
) -> BulkResyncResponse:
    """Resync every driver and report old and new status per driver."""

    try:
        results = service.resync_all(actor=actor)
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    items = [BulkResyncItem.model_validate(result.to_dict()) for result in results]
    succeeded = sum(1 for item in items if item.success)
    return BulkResyncResponse(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        results=items,
    )


@router.post("/drivers/{driver_id}/resync", response_model=ResyncResponse)
def resync_driver(
    driver_id: str,
    *,
    actor: str | None = Query(default=None, max_length=200),
    service: VerificationService = Depends(get_verification_service),
) -> ResyncResponse:
    """Recompute the aggregate from the reconciled documents and persist it."""

    try:
        outcome = service.resync(driver_id, actor=actor)
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    return ResyncResponse(
        driver_id=driver_id,
        old_status=outcome.previous_status,
        aggregate=AggregatePayload.from_status(outcome.aggregate),
        version=outcome.version,
    )


@router.get("/drivers/{driver_id}/audit", response_model=list[AuditEntryPayload])
def get_driver_audit(
    driver_id: str,
    *,
    service: VerificationService = Depends(get_verification_service),
) -> list[AuditEntryPayload]:
    """Return the audit trail for a driver, oldest first."""

    try:
        service.store.load_snapshot(driver_id)
        entries = service.store.list_audit_entries(driver_id)
    except VerificationEngineError as exc:
        raise _http_error(exc) from exc
    return [AuditEntryPayload.model_validate(entry, from_attributes=True) for entry in entries]


__all__ = ["router"]
