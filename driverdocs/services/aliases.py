"""Document type aliases shared by the profile and verification-request writers.

The driver profile and the verification request were written by different
clients and never agreed on key names. Every place that needs to look up a
document by a source key goes through this table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from ..utils.errors import UnknownDocumentType


class DocumentType(str, Enum):
    """Closed set of identity documents collected from every driver."""

    DRIVING_LICENSE = "drivingLicense"
    AADHAAR = "aadhaar"
    INSURANCE = "insurance"
    RC_BOOK = "rcBook"
    PROFILE_PHOTO = "profilePhoto"


@dataclass(frozen=True, slots=True)
class AliasEntry:
    """Keys under which one document type is stored by each source."""

    document_type: DocumentType
    profile_key: str
    verification_key: str
    legacy_keys: tuple[str, ...] = ()

    def profile_lookup_keys(self) -> tuple[str, ...]:
        """Own key first, then the canonical name, then the other writer's key."""

        return _dedupe(
            (
                self.profile_key,
                self.document_type.value,
                self.verification_key,
                *self.legacy_keys,
            )
        )

    def verification_lookup_keys(self) -> tuple[str, ...]:
        return _dedupe(
            (
                self.verification_key,
                self.profile_key,
                self.document_type.value,
                *self.legacy_keys,
            )
        )

    def all_keys(self) -> tuple[str, ...]:
        return _dedupe(
            (
                self.document_type.value,
                self.profile_key,
                self.verification_key,
                *self.legacy_keys,
            )
        )


def _dedupe(keys: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(keys))


ALIAS_ENTRIES: tuple[AliasEntry, ...] = (
    AliasEntry(DocumentType.DRIVING_LICENSE, "drivingLicense", "driving_license"),
    AliasEntry(DocumentType.AADHAAR, "aadhaarCard", "aadhaar_card"),
    AliasEntry(DocumentType.INSURANCE, "bikeInsurance", "bike_insurance"),
    AliasEntry(DocumentType.RC_BOOK, "rcBook", "rc_book", legacy_keys=("rc",)),
    AliasEntry(
        DocumentType.PROFILE_PHOTO, "profilePhoto", "profile_photo", legacy_keys=("profile",)
    ),
)


def _build_index(entries: tuple[AliasEntry, ...]) -> Mapping[str, DocumentType]:
    """Return a key index, refusing keys claimed by more than one type."""

    index: dict[str, DocumentType] = {}
    seen_types: set[DocumentType] = set()
    for entry in entries:
        if entry.document_type in seen_types:
            raise ValueError(f"Duplicate alias entry for {entry.document_type.value}")
        seen_types.add(entry.document_type)
        for key in entry.all_keys():
            owner = index.get(key)
            if owner is not None and owner is not entry.document_type:
                raise ValueError(
                    f"Alias key {key!r} is shared by {owner.value} and "
                    f"{entry.document_type.value}"
                )
            index[key] = entry.document_type
    missing = set(DocumentType) - seen_types
    if missing:
        names = ", ".join(sorted(item.value for item in missing))
        raise ValueError(f"Alias table has no entry for: {names}")
    return MappingProxyType(index)


_KEY_INDEX = _build_index(ALIAS_ENTRIES)
_ENTRY_BY_TYPE: Mapping[DocumentType, AliasEntry] = MappingProxyType(
    {entry.document_type: entry for entry in ALIAS_ENTRIES}
)


def canonical_key_for(source_key: str) -> DocumentType | None:
    """Return the document type stored under ``source_key`` in either source."""

    if not isinstance(source_key, str):
        return None
    return _KEY_INDEX.get(source_key.strip())


def profile_key(document_type: DocumentType) -> str:
    return _ENTRY_BY_TYPE[document_type].profile_key


def verification_key(document_type: DocumentType) -> str:
    return _ENTRY_BY_TYPE[document_type].verification_key


def lookup_profile(documents: Mapping[str, Any], document_type: DocumentType) -> Any:
    """Return the first profile-source entry present for ``document_type``."""

    for key in _ENTRY_BY_TYPE[document_type].profile_lookup_keys():
        value = documents.get(key)
        if value is not None:
            return value
    return None


def lookup_verification(documents: Mapping[str, Any], document_type: DocumentType) -> Any:
    """Return the first verification-source entry present for ``document_type``."""

    for key in _ENTRY_BY_TYPE[document_type].verification_lookup_keys():
        value = documents.get(key)
        if value is not None:
            return value
    return None


def resolve_document_type(raw: str) -> DocumentType:
    """Translate an admin-supplied key into a document type."""

    document_type = canonical_key_for(raw)
    if document_type is None:
        raise UnknownDocumentType(
            f"Unknown document type: {raw!r}",
            extra={"known": [item.value for item in DocumentType]},
        )
    return document_type


__all__ = [
    "ALIAS_ENTRIES",
    "AliasEntry",
    "DocumentType",
    "canonical_key_for",
    "lookup_profile",
    "lookup_verification",
    "profile_key",
    "resolve_document_type",
    "verification_key",
]
