"""Duplicate detection for certificate issuance.

This package provides:
- A configurable, rule-based duplicate detection engine
- Override requests with a single review per request
- Duplicate reports over issued certificates
- In-memory and SQLite reference stores
"""

from .config import ConfigManager, default_config, strict_config, lenient_config
from .deduplication import DuplicateDetectionEngine, DuplicateDetectionService
from .models import CertificateCandidate, DetectionConfig, DuplicateDecision

__all__ = [
    "ConfigManager",
    "default_config",
    "strict_config",
    "lenient_config",
    "DuplicateDetectionEngine",
    "DuplicateDetectionService",
    "CertificateCandidate",
    "DetectionConfig",
    "DuplicateDecision",
]

__version__ = "0.1.0"
