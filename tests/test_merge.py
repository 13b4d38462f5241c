"""Tests for merging one document type from both sources."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from driverdocs.services.merge import (
    UNSPECIFIED_REJECTION_REASON,
    CanonicalDocument,
    DocumentStatus,
    merge,
    normalize_status,
    parse_timestamp,
)


def test_both_sources_absent_gives_pending_default():
    doc = merge(None, None)
    assert doc == CanonicalDocument(url="", status=DocumentStatus.PENDING, verified=False)
    assert doc.is_present is False


def test_verification_record_with_url_takes_precedence():
    doc = merge(
        {"url": "A", "status": "uploaded"},
        {"downloadURL": "B", "verificationStatus": "approved"},
    )
    assert doc.url == "B"
    assert doc.status is DocumentStatus.APPROVED
    assert doc.verified is True


def test_verification_record_without_url_never_blanks_profile():
    doc = merge({"url": "X", "status": "uploaded"}, {"downloadURL": ""})
    assert doc.url == "X"
    assert doc.status is DocumentStatus.UPLOADED


def test_verification_record_without_url_keeps_profile_status():
    doc = merge(
        {"url": "X", "status": "rejected", "rejectionReason": "blurry"},
        {"verificationStatus": "approved"},
    )
    assert doc.status is DocumentStatus.REJECTED
    assert doc.rejection_reason == "blurry"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("uploaded", DocumentStatus.UPLOADED),
        ("pending", DocumentStatus.PENDING),
        ("approved", DocumentStatus.APPROVED),
        ("verified", DocumentStatus.APPROVED),
        (" Rejected ", DocumentStatus.REJECTED),
        ("in_review", None),
        (None, None),
        (3, None),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) is expected


def test_unknown_status_with_url_counts_as_uploaded():
    doc = merge({"url": "X", "status": "in_review"})
    assert doc.status is DocumentStatus.UPLOADED


def test_pending_status_with_url_counts_as_uploaded():
    doc = merge(None, {"downloadURL": "B", "verificationStatus": "pending"})
    assert doc.status is DocumentStatus.UPLOADED
    assert doc.url == "B"


def test_verified_flag_without_status_means_approved():
    doc = merge(None, {"downloadURL": "B", "verified": True})
    assert doc.status is DocumentStatus.APPROVED
    assert doc.verified is True


def test_decided_status_beats_uploaded_marker():
    doc = merge(None, {"downloadURL": "B", "verificationStatus": "uploaded", "status": "rejected"})
    assert doc.status is DocumentStatus.REJECTED
    assert doc.rejection_reason == UNSPECIFIED_REJECTION_REASON


def test_rejection_reason_dropped_for_non_rejected_status():
    doc = merge({"url": "X", "status": "approved", "rejectionReason": "old"})
    assert doc.status is DocumentStatus.APPROVED
    assert doc.rejection_reason is None


def test_non_mapping_sources_degrade_to_absent():
    assert merge("garbage", 42) == CanonicalDocument.missing()
    assert merge(["x"], {"downloadURL": "B"}).url == "B"


def test_status_without_url_is_pending():
    doc = merge({"status": "approved"}, None)
    assert doc == CanonicalDocument.missing()


def test_verification_override_carries_filename_and_timestamp():
    doc = merge(
        {"url": "A", "filename": "a.jpg", "uploadedAt": "2024-01-01T00:00:00Z"},
        {"downloadURL": "B", "filename": "b.jpg", "uploadedAt": 1717200000000},
    )
    assert doc.filename == "b.jpg"
    assert doc.uploaded_at == datetime(2024, 6, 1, 0, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-01T10:00:00Z", datetime(2024, 1, 1, 10, 0, tzinfo=UTC)),
        ("2024-01-01T10:00:00", datetime(2024, 1, 1, 10, 0, tzinfo=UTC)),
        (1704067200, datetime(2024, 1, 1, tzinfo=UTC)),
        (1704067200000, datetime(2024, 1, 1, tzinfo=UTC)),
        ({"_seconds": 1704067200, "_nanoseconds": 0}, datetime(2024, 1, 1, tzinfo=UTC)),
        ("yesterday", None),
        ("", None),
        (True, None),
        (None, None),
    ],
)
def test_parse_timestamp_shapes(raw, expected):
    assert parse_timestamp(raw) == expected


def test_canonical_document_invariants_are_enforced():
    with pytest.raises(ValueError):
        CanonicalDocument(url="X", status=DocumentStatus.APPROVED, verified=False)
    with pytest.raises(ValueError):
        CanonicalDocument(url="X", status=DocumentStatus.REJECTED)
    with pytest.raises(ValueError):
        CanonicalDocument(url=None)  # type: ignore[arg-type]


def test_merge_does_not_mutate_inputs():
    profile = {"url": "A", "status": "uploaded"}
    verification = {"downloadURL": "B", "verificationStatus": "approved"}
    merge(profile, verification)
    assert profile == {"url": "A", "status": "uploaded"}
    assert verification == {"downloadURL": "B", "verificationStatus": "approved"}
