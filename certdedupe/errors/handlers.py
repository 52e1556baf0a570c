"""Error handlers with context preservation for duplicate detection."""

import traceback
from collections import Counter, deque
from typing import Any, Deque, Dict, List, Optional
from datetime import datetime, timezone
from contextlib import contextmanager
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
import logging

from ..security.audit import AuditLogger


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    STORE = "store"
    STATE_CONFLICT = "state_conflict"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ErrorContext:
    """Context information for an error."""
    operation: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    request_data: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    correlation_id: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class DuplicateDetectionError(Exception):
    """Base exception for all duplicate detection errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.cause = cause
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.timestamp = _utcnow()

        # Capture stack trace
        self.stack_trace = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "stack_trace": self.stack_trace,
        }


class ConfigurationError(DuplicateDetectionError):
    """Malformed rule or detection configuration."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )
        self.field = field
        self.value = value


class ValidationError(DuplicateDetectionError):
    """Invalid caller input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )
        self.field = field
        self.value = value


class StoreError(DuplicateDetectionError):
    """Read or write failure from a storage collaborator."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORE,
            retryable=True,
        )
        self.operation = operation


class StateConflictError(DuplicateDetectionError):
    """Transition attempted on an override request that is no longer pending."""

    def __init__(
        self,
        message: str,
        request_id: str,
        current_status: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.STATE_CONFLICT,
            retryable=False,
        )
        self.request_id = request_id
        self.current_status = current_status


class OverrideRequestNotFoundError(DuplicateDetectionError):
    """Override request id is unknown to the repository."""

    def __init__(self, request_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            f"Override request {request_id} not found",
            context=context,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.NOT_FOUND,
            retryable=False,
        )
        self.request_id = request_id


class DuplicateCertificateError(DuplicateDetectionError):
    """Issuance refused because the candidate is a likely duplicate."""

    def __init__(
        self,
        message: str,
        decision: Any,
        requires_override: bool = False,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.DUPLICATE,
            retryable=False,
        )
        self.decision = decision
        self.requires_override = requires_override

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["requires_override"] = self.requires_override
        data["details"] = self.decision.model_dump(mode="json", by_alias=True)
        return data


_SEVERITY_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class ErrorHandler:
    """Centralized error handler with context preservation."""

    def __init__(self, audit_logger: Optional[AuditLogger] = None, history_size: int = 1000):
        """Initialize error handler.

        Args:
            audit_logger: Audit trail receiving every handled error
            history_size: Number of recent errors kept for statistics
        """
        self.audit_logger = audit_logger or AuditLogger()
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._recent: Deque[DuplicateDetectionError] = deque(maxlen=history_size)

    def _stack(self) -> List[ErrorContext]:
        if not hasattr(self._local, "stack"):
            self._local.stack = []
        return self._local.stack

    @contextmanager
    def error_context(self, **kwargs):
        """Push an ErrorContext for errors handled inside the block.

        Usage:
            with error_handler.error_context(operation="query_certificates", resource_id="rule-1"):
                ...
        """
        stack = self._stack()
        stack.append(ErrorContext(**kwargs))
        try:
            yield stack[-1]
        finally:
            stack.pop()

    def get_current_context(self) -> Optional[ErrorContext]:
        stack = self._stack()
        return stack[-1] if stack else None

    def handle_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        reraise: bool = True,
    ) -> Optional[DuplicateDetectionError]:
        """Record an error against the current context.

        Foreign exceptions are wrapped in ``StoreError``: the only code that
        runs under a handler is collaborator I/O.

        Args:
            error: The error to handle
            operation: Overrides the current context's operation name
            reraise: Raise the (wrapped) error instead of returning it

        Returns:
            The wrapped error when ``reraise`` is false
        """
        context = self.get_current_context()
        if operation and context:
            context.operation = operation

        if isinstance(error, DuplicateDetectionError):
            wrapped = error
            wrapped.context = wrapped.context or context
        else:
            wrapped = StoreError(
                f"{type(error).__name__}: {error}",
                operation=operation or (context.operation if context else None),
                context=context,
                cause=error,
            )

        self._record(wrapped)

        if not reraise:
            return wrapped
        if wrapped is error:
            raise wrapped
        raise wrapped from error

    def _record(self, error: DuplicateDetectionError) -> None:
        details = error.to_dict()
        self.audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=error.message,
            stack_trace=error.stack_trace,
            context=details,
        )
        self.logger.log(
            _SEVERITY_LEVELS[error.severity],
            f"{error.category.value}: {error.message}",
            extra={"error_type": type(error).__name__, "retryable": error.retryable},
        )

        with self._lock:
            self._counts[type(error).__name__] += 1
            self._recent.append(error)

    def get_error_stats(self) -> Dict[str, Any]:
        """Totals per error type plus a breakdown of the most recent errors."""
        with self._lock:
            counts = dict(self._counts)
            recent = list(self._recent)[-100:]

        severities = Counter(error.severity.value for error in recent)
        retryable = sum(1 for error in recent if error.retryable)
        return {
            "total_errors": sum(counts.values()),
            "error_counts": counts,
            "severity_distribution": {s.value: severities[s.value] for s in ErrorSeverity},
            "retryable_errors": retryable,
            "non_retryable_errors": len(recent) - retryable,
        }

    def create_user_friendly_message(self, error: DuplicateDetectionError) -> str:
        """Create user-friendly error message."""
        if isinstance(error, ConfigurationError):
            if error.field:
                return f"Invalid detection configuration for '{error.field}': {error.message}"
            return f"Invalid detection configuration: {error.message}"
        elif isinstance(error, ValidationError):
            if error.field:
                return f"Invalid value for field '{error.field}': {error.message}"
            return f"Validation error: {error.message}"
        elif isinstance(error, StoreError):
            return "Certificate store is unavailable. Please try again later."
        elif isinstance(error, StateConflictError):
            return (
                f"Override request {error.request_id} has already been reviewed"
                f" ({error.current_status})."
            )
        elif isinstance(error, OverrideRequestNotFoundError):
            return f"Override request {error.request_id} does not exist."
        elif isinstance(error, DuplicateCertificateError):
            return error.message
        return f"An error occurred: {error.message}"
