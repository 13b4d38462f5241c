"""Merge one document type from the profile and verification-request sources."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping

from ..utils.logging import get_logger

LOGGER = get_logger("merge")

UNSPECIFIED_REJECTION_REASON = "Rejected without a recorded reason"


class DocumentStatus(str, Enum):
    """Canonical verification status of a single document."""

    PENDING = "pending"
    UPLOADED = "uploaded"
    APPROVED = "approved"
    REJECTED = "rejected"


_STATUS_ALIASES: dict[str, DocumentStatus] = {
    "pending": DocumentStatus.PENDING,
    "uploaded": DocumentStatus.UPLOADED,
    "approved": DocumentStatus.APPROVED,
    "verified": DocumentStatus.APPROVED,
    "rejected": DocumentStatus.REJECTED,
}

_DECIDED = (DocumentStatus.APPROVED, DocumentStatus.REJECTED)


def normalize_status(raw: Any) -> DocumentStatus | None:
    """Map a free-form source status onto the canonical enum.

    Returns ``None`` for values that are not recognised so callers can tell
    "absent" apart from an explicit ``pending``.
    """

    if isinstance(raw, DocumentStatus):
        return raw
    if not isinstance(raw, str):
        return None
    return _STATUS_ALIASES.get(raw.strip().lower())


def parse_timestamp(raw: Any) -> datetime | None:
    """Return an aware UTC datetime for the timestamp shapes seen in the stores."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=UTC)
    if isinstance(raw, (int, float)):
        seconds = raw / 1000.0 if raw > 1e11 else float(raw)
        try:
            return datetime.fromtimestamp(seconds, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(raw, Mapping):
        seconds = raw.get("_seconds", raw.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            return parse_timestamp(float(seconds))
        return None
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _text(raw: Any) -> str | None:
    if isinstance(raw, str):
        stripped = raw.strip()
        return stripped or None
    return None


@dataclass(frozen=True, slots=True)
class CanonicalDocument:
    """Reconciled, authoritative view of one driver document."""

    url: str = ""
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: datetime | None = None
    verified: bool = False
    rejection_reason: str | None = None
    filename: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None

    def __post_init__(self) -> None:
        if self.url is None:
            raise ValueError("url must be a string; use '' for a missing document")
        if self.verified != (self.status is DocumentStatus.APPROVED):
            raise ValueError("verified must be true exactly when status is approved")
        if self.status is DocumentStatus.REJECTED and self.rejection_reason is None:
            raise ValueError("rejected documents require a rejection reason")

    @classmethod
    def missing(cls) -> "CanonicalDocument":
        return cls()

    @property
    def is_present(self) -> bool:
        return bool(self.url)

    def evolve(self, **changes: Any) -> "CanonicalDocument":
        """Return a copy with ``changes`` applied; the original is untouched."""

        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "uploadedAt": _isoformat(self.uploaded_at),
            "verified": self.verified,
            "rejectionReason": self.rejection_reason,
            "filename": self.filename,
            "reviewedAt": _isoformat(self.reviewed_at),
            "reviewedBy": self.reviewed_by,
        }


@dataclass(frozen=True, slots=True)
class SourceFields:
    """Tolerant reading of one source record under either naming convention."""

    url: str
    status: DocumentStatus | None
    filename: str | None
    uploaded_at: datetime | None
    rejection_reason: str | None
    reviewed_at: datetime | None
    reviewed_by: str | None

    @classmethod
    def from_record(cls, record: Any) -> "SourceFields | None":
        if not isinstance(record, Mapping):
            return None
        url = _text(record.get("downloadURL")) or _text(record.get("url")) or ""
        return cls(
            url=url,
            status=_resolve_record_status(record),
            filename=_text(record.get("filename")),
            uploaded_at=parse_timestamp(record.get("uploadedAt")),
            rejection_reason=_text(record.get("rejectionReason")),
            reviewed_at=parse_timestamp(
                record.get("reviewedAt", record.get("verifiedAt"))
            ),
            reviewed_by=_text(record.get("reviewedBy")) or _text(record.get("verifiedBy")),
        )


def _resolve_record_status(record: Mapping[str, Any]) -> DocumentStatus | None:
    """Pick the most informative status a record carries.

    ``verificationStatus`` is read before ``status``; an admin decision in
    either field beats an ``uploaded``/``pending`` marker in the other.
    """

    candidates = [
        status
        for status in (
            normalize_status(record.get("verificationStatus")),
            normalize_status(record.get("status")),
        )
        if status is not None
    ]
    for status in candidates:
        if status in _DECIDED:
            return status
    if DocumentStatus.UPLOADED in candidates:
        return DocumentStatus.UPLOADED
    if candidates:
        return candidates[0]
    if record.get("verified") is True:
        return DocumentStatus.APPROVED
    return None


def merge(profile_doc: Any = None, verification_doc: Any = None) -> CanonicalDocument:
    """Merge one document type's two source records into a canonical document.

    The profile record is the baseline. The verification record replaces
    ``url``, ``status``, ``filename`` and ``uploadedAt`` only when it carries a
    non-empty URL, so an entry that was never uploaded cannot blank a
    document the profile already has.

    A record with a URL but a ``pending``, missing or unrecognised status
    resolves to ``uploaded``, not ``pending``: the URL shows a submission
    exists, and approve and reject both start from ``uploaded``. Malformed
    records degrade to the pending default instead of raising.
    """

    profile = SourceFields.from_record(profile_doc)
    verification = SourceFields.from_record(verification_doc)
    if profile is None and verification is None:
        return CanonicalDocument.missing()

    url = ""
    status: DocumentStatus | None = None
    filename: str | None = None
    uploaded_at: datetime | None = None
    rejection_reason: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None

    if profile is not None:
        url = profile.url
        status = profile.status
        filename = profile.filename
        uploaded_at = profile.uploaded_at
        rejection_reason = profile.rejection_reason
        reviewed_at = profile.reviewed_at
        reviewed_by = profile.reviewed_by

    if verification is not None and verification.url:
        LOGGER.trace(  # type: ignore[attr-defined]
            "verification record overrides profile url=%s status=%s",
            verification.url,
            verification.status,
        )
        url = verification.url
        status = verification.status
        filename = verification.filename
        uploaded_at = verification.uploaded_at
        if verification.rejection_reason:
            rejection_reason = verification.rejection_reason
        if verification.reviewed_at or verification.reviewed_by:
            reviewed_at = verification.reviewed_at
            reviewed_by = verification.reviewed_by

    if not url:
        return CanonicalDocument.missing()

    if status is None or status is DocumentStatus.PENDING:
        # A stored URL means something was submitted.
        status = DocumentStatus.UPLOADED

    if status is DocumentStatus.REJECTED:
        rejection_reason = rejection_reason or UNSPECIFIED_REJECTION_REASON
    else:
        rejection_reason = None
    if status not in _DECIDED:
        reviewed_at = None
        reviewed_by = None

    return CanonicalDocument(
        url=url,
        status=status,
        uploaded_at=uploaded_at,
        verified=status is DocumentStatus.APPROVED,
        rejection_reason=rejection_reason,
        filename=filename,
        reviewed_at=reviewed_at,
        reviewed_by=reviewed_by,
    )


__all__ = [
    "CanonicalDocument",
    "DocumentStatus",
    "SourceFields",
    "UNSPECIFIED_REJECTION_REASON",
    "merge",
    "normalize_status",
    "parse_timestamp",
]
