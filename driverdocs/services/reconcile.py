"""Build a driver's canonical document set from both source records."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from .aliases import (
    DocumentType,
    lookup_profile,
    lookup_verification,
    profile_key,
    verification_key,
)
from .merge import CanonicalDocument, merge


class DriverDocumentSet(Mapping[DocumentType, CanonicalDocument]):
    """Immutable mapping holding exactly one canonical document per type."""

    __slots__ = ("_documents",)

    def __init__(self, documents: Mapping[DocumentType, CanonicalDocument] | None = None) -> None:
        provided = dict(documents or {})
        unknown = [key for key in provided if not isinstance(key, DocumentType)]
        if unknown:
            raise TypeError(f"Document set keys must be DocumentType, got {unknown!r}")
        self._documents = MappingProxyType(
            {
                document_type: provided.get(document_type) or CanonicalDocument.missing()
                for document_type in DocumentType
            }
        )

    def __getitem__(self, key: DocumentType) -> CanonicalDocument:
        return self._documents[key]

    def __iter__(self) -> Iterator[DocumentType]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DriverDocumentSet):
            return dict(self._documents) == dict(other._documents)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._documents.items()))

    def __repr__(self) -> str:
        statuses = ", ".join(
            f"{key.value}={doc.status.value}" for key, doc in self._documents.items()
        )
        return f"DriverDocumentSet({statuses})"

    def replace(self, document_type: DocumentType, document: CanonicalDocument) -> "DriverDocumentSet":
        """Return a new set with ``document_type`` swapped for ``document``."""

        updated = dict(self._documents)
        updated[document_type] = document
        return DriverDocumentSet(updated)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {key.value: doc.to_dict() for key, doc in self._documents.items()}

    def profile_payload(self) -> dict[str, dict[str, Any]]:
        """Serialise under the profile record's keys and field names."""

        return {profile_key(key): doc.to_dict() for key, doc in self._documents.items()}

    def verification_payload(self) -> dict[str, dict[str, Any]]:
        """Serialise under the verification request's keys and field names.

        Documents without a URL are left out so the request keeps its
        append-only shape.
        """

        payload: dict[str, dict[str, Any]] = {}
        for key, doc in self._documents.items():
            if not doc.is_present:
                continue
            data = doc.to_dict()
            payload[verification_key(key)] = {
                "downloadURL": data["url"],
                "verificationStatus": data["status"],
                "filename": data["filename"],
                "uploadedAt": data["uploadedAt"],
                "verified": data["verified"],
                "rejectionReason": data["rejectionReason"],
                "verifiedAt": data["reviewedAt"],
                "verifiedBy": data["reviewedBy"],
            }
        return payload


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def reconcile(profile_docs: Any = None, verification_docs: Any = None) -> DriverDocumentSet:
    """Merge every document type independently; never raises for bad input."""

    profile = _as_mapping(profile_docs)
    verification = _as_mapping(verification_docs)
    return DriverDocumentSet(
        {
            document_type: merge(
                lookup_profile(profile, document_type),
                lookup_verification(verification, document_type),
            )
            for document_type in DocumentType
        }
    )


__all__ = ["DriverDocumentSet", "reconcile"]
