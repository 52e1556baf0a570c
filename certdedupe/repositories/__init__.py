"""Certificate store and override ledger implementations."""

from .base import CertificateStore, OverrideRequestRepository
from .memory import InMemoryCertificateStore, InMemoryOverrideRequestRepository
from .sqlite import SQLiteCertificateStore, SQLiteOverrideRequestRepository

__all__ = [
    "CertificateStore",
    "OverrideRequestRepository",
    "InMemoryCertificateStore",
    "InMemoryOverrideRequestRepository",
    "SQLiteCertificateStore",
    "SQLiteOverrideRequestRepository",
]
