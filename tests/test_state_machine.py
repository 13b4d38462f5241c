"""Tests for document verification transitions."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from driverdocs.services.merge import CanonicalDocument, DocumentStatus
from driverdocs.services.state_machine import (
    Decision,
    DecisionAction,
    ReuploadPolicy,
    apply_decision,
    apply_upload,
    parse_decision,
)
from driverdocs.utils.errors import InvalidTransition, MissingReason, ValidationError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

UPLOADED = CanonicalDocument(url="u", status=DocumentStatus.UPLOADED)
APPROVED = CanonicalDocument(url="u", status=DocumentStatus.APPROVED, verified=True)
REJECTED = CanonicalDocument(url="u", status=DocumentStatus.REJECTED, rejection_reason="blurry")
PENDING = CanonicalDocument.missing()


@pytest.mark.parametrize("doc", [UPLOADED, REJECTED])
def test_approve_from_reviewable_states(doc):
    result = apply_decision(doc, Decision.approve(reviewer="admin-1"), now=NOW)
    assert result.status is DocumentStatus.APPROVED
    assert result.verified is True
    assert result.rejection_reason is None
    assert result.reviewed_at == NOW
    assert result.reviewed_by == "admin-1"
    assert doc.status is not DocumentStatus.APPROVED


def test_approve_is_idempotent():
    assert apply_decision(APPROVED, Decision.approve()) is APPROVED


def test_approve_pending_is_invalid():
    with pytest.raises(InvalidTransition) as excinfo:
        apply_decision(PENDING, Decision.approve())
    assert excinfo.value.extra["from"] == "pending"


@pytest.mark.parametrize("doc", [UPLOADED, APPROVED])
def test_reject_from_reviewable_states(doc):
    result = apply_decision(doc, Decision.reject("  expired  "), now=NOW)
    assert result.status is DocumentStatus.REJECTED
    assert result.verified is False
    assert result.rejection_reason == "expired"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason_and_leaves_input_unchanged(reason):
    before = UPLOADED
    with pytest.raises(MissingReason):
        apply_decision(before, Decision.reject(reason))
    assert before == CanonicalDocument(url="u", status=DocumentStatus.UPLOADED)


def test_missing_reason_is_checked_before_state():
    with pytest.raises(MissingReason):
        apply_decision(PENDING, Decision.reject(""))


@pytest.mark.parametrize("doc", [PENDING, REJECTED])
def test_reject_from_pending_or_rejected_is_invalid(doc):
    with pytest.raises(InvalidTransition):
        apply_decision(doc, Decision.reject("again"))


def test_parse_decision_accepts_aliases():
    decision = parse_decision(
        {"status": "Rejected", "rejectionReason": "blurry", "reviewer": " ops "}
    )
    assert decision.action is DecisionAction.REJECT
    assert decision.reason == "blurry"
    assert decision.reviewer == "ops"
    assert parse_decision({"decision": "verified"}).action is DecisionAction.APPROVE


@pytest.mark.parametrize("payload", [{}, {"decision": "maybe"}, {"decision": 1}, "approve"])
def test_parse_decision_rejects_malformed_input(payload):
    with pytest.raises(ValidationError):
        parse_decision(payload)


@pytest.mark.parametrize("doc", [PENDING, UPLOADED, REJECTED])
def test_upload_moves_document_to_uploaded(doc):
    result = apply_upload(doc, " new-url ", filename="dl.jpg", uploaded_at=NOW)
    assert result == CanonicalDocument(
        url="new-url",
        status=DocumentStatus.UPLOADED,
        uploaded_at=NOW,
        filename="dl.jpg",
    )


def test_upload_over_approved_depends_on_policy():
    with pytest.raises(InvalidTransition):
        apply_upload(APPROVED, "new-url")
    reopened = apply_upload(APPROVED, "new-url", policy=ReuploadPolicy.REOPEN)
    assert reopened.status is DocumentStatus.UPLOADED
    assert reopened.verified is False


def test_upload_requires_url():
    with pytest.raises(ValidationError):
        apply_upload(PENDING, "  ")
