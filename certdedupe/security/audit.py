"""Audit logging for duplicate decisions and override reviews."""

import structlog
from datetime import datetime, timezone
from typing import Any, Dict, Optional, List
import hashlib
import threading
from contextlib import contextmanager


class AuditLogger:
    """Structured audit trail for duplicate detection operations."""

    SENSITIVE_KEYS = [
        "password",
        "api_key",
        "token",
        "secret",
        "credential",
        "private_key",
    ]

    def __init__(self, logger_name: str = "certdedupe.audit"):
        """Initialize audit logger.

        Args:
            logger_name: Name of the underlying stdlib logger
        """
        self.logger = structlog.get_logger(logger_name)
        self._configure_logger()

        # Thread-local storage for context
        self._context = threading.local()

    def _configure_logger(self):
        """Configure structured logger with proper processors."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                self._add_audit_context,
                self._sanitize_sensitive_data,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def _add_audit_context(self, logger, method_name, event_dict):
        """Add audit context to log entries."""
        event_dict["audit_timestamp"] = datetime.now(timezone.utc).isoformat()
        event_dict["audit_version"] = "1.0"

        for key in ("user_id", "request_id", "issuer_id"):
            if hasattr(self._context, key):
                event_dict[key] = getattr(self._context, key)

        return event_dict

    def _sanitize_sensitive_data(self, logger, method_name, event_dict):
        """Remove or mask sensitive data from logs."""

        def sanitize_value(key: str, value: Any) -> Any:
            key_lower = key.lower()

            if any(term in key_lower for term in self.SENSITIVE_KEYS):
                if isinstance(value, str) and len(value) > 8:
                    return f"{value[:4]}...{value[-4:]}"
                return "***REDACTED***"

            if isinstance(value, dict):
                return {k: sanitize_value(k, v) for k, v in value.items()}
            elif isinstance(value, list):
                return [sanitize_value(f"item_{i}", v) for i, v in enumerate(value)]

            return value

        for key, value in list(event_dict.items()):
            event_dict[key] = sanitize_value(key, value)

        return event_dict

    @contextmanager
    def audit_context(self, **kwargs):
        """Context manager to set audit context.

        Usage:
            with audit_logger.audit_context(user_id="admin-1"):
                audit_logger.log_override_reviewed(...)
        """
        previous_context = {}
        for key, value in kwargs.items():
            if hasattr(self._context, key):
                previous_context[key] = getattr(self._context, key)
            setattr(self._context, key, value)

        try:
            yield
        finally:
            for key in kwargs:
                if key in previous_context:
                    setattr(self._context, key, previous_context[key])
                else:
                    delattr(self._context, key)

    def log_duplicate_decision(
        self,
        issuer_id: Optional[str],
        recipient_email: Optional[str],
        action: str,
        confidence: float,
        matched_certificate_ids: List[str],
        rule_ids: Optional[List[str]] = None,
    ) -> None:
        """Log a candidate flagged as a likely duplicate.

        Args:
            issuer_id: Issuer of the candidate certificate
            recipient_email: Recipient of the candidate certificate
            action: Resolved action (block, warn)
            confidence: Highest similarity among matches
            matched_certificate_ids: Existing certificates that matched
            rule_ids: Rules that produced matches
        """
        log_data = {
            "event_type": "duplicate_detected",
            "issuer_id": issuer_id,
            "action": action,
            "confidence": round(confidence, 4),
            "match_count": len(matched_certificate_ids),
            "matched_certificate_ids": matched_certificate_ids,
        }

        if recipient_email:
            # Recipient identity is hashed, not logged verbatim
            log_data["recipient_hash"] = hashlib.sha256(
                recipient_email.strip().lower().encode()
            ).hexdigest()[:16]
        if rule_ids:
            log_data["rule_ids"] = rule_ids

        if action == "block":
            self.logger.warning("duplicate_detected", **log_data)
        else:
            self.logger.info("duplicate_detected", **log_data)

    def log_override_requested(
        self, request_id: str, certificate_id: str, requested_by: str, reason: str
    ) -> None:
        """Log creation of an override request."""
        self.logger.info(
            "override_requested",
            event_type="override_requested",
            request_id=request_id,
            certificate_id=certificate_id,
            requested_by=requested_by,
            reason=reason,
        )

    def log_override_reviewed(
        self,
        request_id: str,
        certificate_id: str,
        status: str,
        reviewed_by: str,
        success: bool = True,
        reason: Optional[str] = None,
    ) -> None:
        """Log an approve/reject attempt on an override request.

        Args:
            request_id: Override request id
            certificate_id: Certificate the request refers to
            status: Target status of the transition
            reviewed_by: Approver or rejecter
            success: Whether the transition was applied
            reason: Failure reason if not applied
        """
        log_data = {
            "event_type": "override_reviewed",
            "request_id": request_id,
            "certificate_id": certificate_id,
            "status": status,
            "reviewed_by": reviewed_by,
            "success": success,
        }

        if reason:
            log_data["reason"] = reason

        if success:
            self.logger.info("override_reviewed", **log_data)
        else:
            self.logger.warning("override_review_rejected", **log_data)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log application errors for debugging.

        Args:
            error_type: Type/class of error
            error_message: Error message
            stack_trace: Optional stack trace
            context: Additional error context
        """
        log_data = {
            "event_type": "error",
            "error_type": error_type,
            "error_message": error_message,
        }

        if stack_trace:
            log_data["stack_trace"] = stack_trace
        if context:
            log_data["error_context"] = context

        self.logger.error("application_error", **log_data)
