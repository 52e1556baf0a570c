"""Error handling module for duplicate detection."""

from .handlers import (
    ErrorHandler,
    ErrorContext,
    ErrorSeverity,
    ErrorCategory,
    DuplicateDetectionError,
    ConfigurationError,
    ValidationError,
    StoreError,
    StateConflictError,
    OverrideRequestNotFoundError,
    DuplicateCertificateError,
)

__all__ = [
    "ErrorHandler",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "DuplicateDetectionError",
    "ConfigurationError",
    "ValidationError",
    "StoreError",
    "StateConflictError",
    "OverrideRequestNotFoundError",
    "DuplicateCertificateError",
]
