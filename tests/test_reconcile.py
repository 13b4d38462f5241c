"""Tests for reconciling a driver's full document set."""

from __future__ import annotations

import pytest

from driverdocs.services.aliases import DocumentType
from driverdocs.services.merge import CanonicalDocument, DocumentStatus
from driverdocs.services.reconcile import DriverDocumentSet, reconcile


def test_reconcile_is_total_for_empty_sources():
    document_set = reconcile({}, None)
    assert set(document_set) == set(DocumentType)
    assert all(doc == CanonicalDocument.missing() for doc in document_set.values())


@pytest.mark.parametrize("bad", [None, "nope", 7, ["drivingLicense"]])
def test_reconcile_tolerates_non_mapping_sources(bad):
    document_set = reconcile(bad, bad)
    assert len(document_set) == len(DocumentType)


def test_reconcile_license_override_scenario():
    document_set = reconcile(
        {"drivingLicense": {"url": "A", "status": "uploaded"}},
        {"driving_license": {"downloadURL": "B", "verificationStatus": "approved"}},
    )
    license_doc = document_set[DocumentType.DRIVING_LICENSE]
    assert license_doc.url == "B"
    assert license_doc.status is DocumentStatus.APPROVED
    assert license_doc.verified is True
    others = [doc for key, doc in document_set.items() if key is not DocumentType.DRIVING_LICENSE]
    assert all(doc.status is DocumentStatus.PENDING for doc in others)


def test_reconcile_aadhaar_non_blanking_scenario():
    document_set = reconcile(
        {"aadhaar": {"url": "X"}},
        {"aadhaar_card": {"downloadURL": ""}},
    )
    aadhaar = document_set[DocumentType.AADHAAR]
    assert aadhaar.url == "X"
    assert aadhaar.status is DocumentStatus.UPLOADED


def test_reconcile_reads_every_source_key():
    document_set = reconcile(
        {
            "bikeInsurance": {"url": "ins", "status": "uploaded"},
            "rc": {"url": "rc-legacy", "status": "rejected", "rejectionReason": "expired"},
        },
        {"profile_photo": {"downloadURL": "photo", "verificationStatus": "pending"}},
    )
    assert document_set[DocumentType.INSURANCE].url == "ins"
    assert document_set[DocumentType.RC_BOOK].rejection_reason == "expired"
    assert document_set[DocumentType.PROFILE_PHOTO].status is DocumentStatus.UPLOADED


def test_document_set_replace_returns_new_set():
    original = reconcile({}, {})
    uploaded = CanonicalDocument(url="u", status=DocumentStatus.UPLOADED)
    updated = original.replace(DocumentType.RC_BOOK, uploaded)
    assert updated[DocumentType.RC_BOOK] == uploaded
    assert original[DocumentType.RC_BOOK] == CanonicalDocument.missing()
    assert updated != original


def test_document_set_rejects_non_enum_keys():
    with pytest.raises(TypeError):
        DriverDocumentSet({"drivingLicense": CanonicalDocument.missing()})  # type: ignore[dict-item]


def test_payloads_use_each_source_naming():
    document_set = reconcile({"drivingLicense": {"url": "A", "status": "uploaded"}}, None)

    profile = document_set.profile_payload()
    assert set(profile) == {"drivingLicense", "aadhaarCard", "bikeInsurance", "rcBook", "profilePhoto"}
    assert profile["drivingLicense"]["url"] == "A"

    verification = document_set.verification_payload()
    assert list(verification) == ["driving_license"]
    assert verification["driving_license"]["downloadURL"] == "A"
    assert verification["driving_license"]["verificationStatus"] == "uploaded"


def test_reconciling_serialised_payloads_reproduces_the_set():
    document_set = reconcile(
        {"aadhaarCard": {"url": "X", "status": "rejected", "rejectionReason": "blurry"}},
        {"driving_license": {"downloadURL": "B", "verificationStatus": "approved"}},
    )
    again = reconcile(document_set.profile_payload(), document_set.verification_payload())
    assert again == document_set
