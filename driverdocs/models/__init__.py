"""Database models for the DriverDocs service."""

from .audit import DocumentAuditEntry
from .driver import DriverListing, DriverProfile, VerificationRequest

__all__ = [
    "DocumentAuditEntry",
    "DriverListing",
    "DriverProfile",
    "VerificationRequest",
]
