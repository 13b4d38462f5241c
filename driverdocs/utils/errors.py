from __future__ import annotations

from typing import Any, Dict


class VerificationEngineError(Exception):
    """Base error raised by the reconciliation and verification engine."""

    code = "verification_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        extra: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.extra = extra or {}

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.extra}


class ValidationError(VerificationEngineError):
    """Raised when admin input is malformed."""

    code = "validation_error"


class MissingReason(ValidationError):
    """Raised when a rejection is requested without a reason."""

    code = "missing_reason"


class UnknownDocumentType(ValidationError):
    """Raised when a document type key is not present in the alias table."""

    code = "unknown_document_type"


class InvalidTransition(VerificationEngineError):
    """Raised when a decision is not allowed from the document's current status."""

    code = "invalid_transition"


class DriverNotFound(VerificationEngineError):
    """Raised when the store has no profile record for a driver."""

    code = "driver_not_found"


class StaleWrite(VerificationEngineError):
    """Raised when the stored version no longer matches the expected version."""

    code = "stale_write"


class PersistTimeout(VerificationEngineError):
    """Raised when the store did not answer within the persist timeout.

    The outcome is ambiguous: the write may or may not have been applied.
    """

    code = "persist_timeout"


class StoreIOError(VerificationEngineError):
    """Raised when the document store fails for reasons other than a timeout."""

    code = "store_io_error"


class SyncRetriesExhausted(VerificationEngineError):
    """Raised when every persist attempt hit a stale write or a timeout."""

    code = "sync_retries_exhausted"

    def __init__(
        self,
        message: str,
        *,
        last_error: VerificationEngineError,
        last_state: Dict[str, Any] | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message,
            extra={
                "attempts": attempts,
                "last_error": last_error.code,
                "last_state": last_state,
            },
        )
        self.last_error = last_error
        self.last_state = last_state
        self.attempts = attempts


__all__ = [
    "DriverNotFound",
    "InvalidTransition",
    "MissingReason",
    "PersistTimeout",
    "StaleWrite",
    "StoreIOError",
    "SyncRetriesExhausted",
    "UnknownDocumentType",
    "ValidationError",
    "VerificationEngineError",
]
