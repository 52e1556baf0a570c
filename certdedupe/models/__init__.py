"""Domain models shared by the engine, stores and CLI."""

from .detection import (
    DuplicateAction,
    CheckField,
    MatchType,
    CertificateStatus,
    DuplicateRule,
    DetectionConfig,
    CertificateCandidate,
    ExistingCertificateView,
    DuplicateMatch,
    DuplicateDecision,
    as_utc,
)
from .overrides import (
    OverrideStatus,
    OverrideRequest,
    DuplicateClass,
    ReportedDuplicate,
    TimeRange,
    DuplicateReport,
)

__all__ = [
    "DuplicateAction",
    "CheckField",
    "MatchType",
    "CertificateStatus",
    "DuplicateRule",
    "DetectionConfig",
    "CertificateCandidate",
    "ExistingCertificateView",
    "DuplicateMatch",
    "DuplicateDecision",
    "as_utc",
    "OverrideStatus",
    "OverrideRequest",
    "DuplicateClass",
    "ReportedDuplicate",
    "TimeRange",
    "DuplicateReport",
]
