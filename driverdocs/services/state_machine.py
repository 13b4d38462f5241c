"""Verification lifecycle of a single canonical document.

``pending -> uploaded -> {approved, rejected}`` and ``rejected -> uploaded``.
Every transition returns a new :class:`CanonicalDocument`; inputs are never
modified, so callers can keep the previous value for their audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping

from ..utils.errors import InvalidTransition, MissingReason, ValidationError
from ..utils.logging import get_logger
from .merge import CanonicalDocument, DocumentStatus

LOGGER = get_logger("state_machine")


class DecisionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReuploadPolicy(str, Enum):
    """What a new submission does to a document that is already approved."""

    DENY = "deny"
    REOPEN = "reopen"


@dataclass(frozen=True, slots=True)
class Decision:
    """An admin decision about one document."""

    action: DecisionAction
    reason: str | None = None
    reviewer: str | None = None
    comments: str | None = None

    @classmethod
    def approve(cls, *, reviewer: str | None = None, comments: str | None = None) -> "Decision":
        return cls(DecisionAction.APPROVE, reviewer=reviewer, comments=comments)

    @classmethod
    def reject(
        cls, reason: str | None, *, reviewer: str | None = None, comments: str | None = None
    ) -> "Decision":
        return cls(DecisionAction.REJECT, reason=reason, reviewer=reviewer, comments=comments)


_ACTION_ALIASES = {
    "approve": DecisionAction.APPROVE,
    "approved": DecisionAction.APPROVE,
    "verified": DecisionAction.APPROVE,
    "reject": DecisionAction.REJECT,
    "rejected": DecisionAction.REJECT,
}


def parse_decision(payload: Mapping[str, Any]) -> Decision:
    """Validate raw admin input and return a :class:`Decision`.

    Accepts ``decision`` or the older ``status`` field for the action and
    ``reason`` or ``rejectionReason`` for the rejection reason. A missing
    reason is reported later by :func:`apply_decision`.
    """

    if not isinstance(payload, Mapping):
        raise ValidationError("Decision payload must be an object")
    raw_action = payload.get("decision", payload.get("status"))
    action = _ACTION_ALIASES.get(raw_action.strip().lower()) if isinstance(raw_action, str) else None
    if action is None:
        raise ValidationError(
            "Decision must be either 'approve' or 'reject'",
            extra={"received": raw_action},
        )
    reason = payload.get("reason") or payload.get("rejectionReason")
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("Rejection reason must be a string")
    reviewer = payload.get("reviewer")
    if isinstance(reviewer, str):
        reviewer = reviewer.strip() or None
    else:
        reviewer = None
    comments = payload.get("comments")
    return Decision(
        action=action,
        reason=reason,
        reviewer=reviewer,
        comments=comments if isinstance(comments, str) else None,
    )


_APPROVABLE = frozenset({DocumentStatus.UPLOADED, DocumentStatus.REJECTED})
_REJECTABLE = frozenset({DocumentStatus.UPLOADED, DocumentStatus.APPROVED})


def apply_decision(
    doc: CanonicalDocument,
    decision: Decision,
    *,
    now: datetime | None = None,
) -> CanonicalDocument:
    """Apply ``decision`` to ``doc`` and return the next canonical value."""

    timestamp = now or datetime.now(UTC)

    if decision.action is DecisionAction.APPROVE:
        if doc.status is DocumentStatus.APPROVED:
            LOGGER.debug("approve on an approved document is a no-op")
            return doc
        if doc.status not in _APPROVABLE:
            raise InvalidTransition(
                f"Cannot approve a document in status '{doc.status.value}'",
                extra={"from": doc.status.value, "action": decision.action.value},
            )
        return doc.evolve(
            status=DocumentStatus.APPROVED,
            verified=True,
            rejection_reason=None,
            reviewed_at=timestamp,
            reviewed_by=decision.reviewer,
        )

    reason = decision.reason.strip() if decision.reason else ""
    if not reason:
        raise MissingReason("A rejection reason is required when rejecting a document")
    if doc.status not in _REJECTABLE:
        raise InvalidTransition(
            f"Cannot reject a document in status '{doc.status.value}'",
            extra={"from": doc.status.value, "action": decision.action.value},
        )
    return doc.evolve(
        status=DocumentStatus.REJECTED,
        verified=False,
        rejection_reason=reason,
        reviewed_at=timestamp,
        reviewed_by=decision.reviewer,
    )


def decision_already_applied(doc: CanonicalDocument, decision: Decision) -> bool:
    """Return True when ``doc`` already carries the outcome of ``decision``.

    Used after a timed-out write, which may have committed: a rejection only
    counts as applied when the stored reason matches.
    """

    if decision.action is DecisionAction.APPROVE:
        return doc.status is DocumentStatus.APPROVED
    reason = decision.reason.strip() if decision.reason else ""
    return (
        doc.status is DocumentStatus.REJECTED
        and bool(reason)
        and doc.rejection_reason == reason
    )

def apply_upload(
    doc: CanonicalDocument,
    url: str,
    *,
    filename: str | None = None,
    uploaded_at: datetime | None = None,
    policy: ReuploadPolicy = ReuploadPolicy.DENY,
) -> CanonicalDocument:
    """Record a new submission for ``doc``.

    Allowed from ``pending``, ``uploaded`` and ``rejected``. Over an approved
    document it depends on ``policy``.
    """

    cleaned = url.strip() if isinstance(url, str) else ""
    if not cleaned:
        raise ValidationError("An uploaded document requires a non-empty url")
    if doc.status is DocumentStatus.APPROVED and policy is not ReuploadPolicy.REOPEN:
        raise InvalidTransition(
            "Document is already approved; re-upload is disabled",
            extra={"from": doc.status.value, "action": "upload"},
        )
    return CanonicalDocument(
        url=cleaned,
        status=DocumentStatus.UPLOADED,
        uploaded_at=uploaded_at or datetime.now(UTC),
        verified=False,
        rejection_reason=None,
        filename=filename,
    )


__all__ = [
    "Decision",
    "DecisionAction",
    "ReuploadPolicy",
    "apply_decision",
    "apply_upload",
    "decision_already_applied",
    "parse_decision",
]
