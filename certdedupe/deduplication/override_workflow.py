"""
Override Workflow

Lifecycle of override requests: a human asks to issue despite a warn verdict,
an admin approves or rejects it. A request is reviewed at most once.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from ..errors import (
    OverrideRequestNotFoundError,
    StateConflictError,
    ValidationError,
)
from ..models import OverrideRequest, OverrideStatus
from ..repositories import OverrideRequestRepository
from ..security.audit import AuditLogger
from .rule_evaluator import utcnow

logger = logging.getLogger(__name__)


def _require(value: Optional[str], field: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field} must not be empty", field=field, value=value)
    return value


class OverrideWorkflow:
    """Creates and reviews override requests against a repository."""

    def __init__(
        self,
        repository: OverrideRequestRepository,
        clock: Callable[[], datetime] = utcnow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.audit_logger = audit_logger or AuditLogger()

    def create(self, certificate_id: str, reason: str, requested_by: str) -> OverrideRequest:
        """Record a new pending override request.

        Several requests for the same certificate may coexist.

        Raises:
            ValidationError: If an argument is empty
            StoreError: If the repository write fails
        """
        _require(certificate_id, "certificate_id")
        _require(reason, "reason")
        _require(requested_by, "requested_by")

        request = OverrideRequest(
            id=f"override_{uuid.uuid4().hex}",
            certificate_id=certificate_id,
            reason=reason,
            requested_by=requested_by,
            status=OverrideStatus.PENDING,
            created_at=self.clock(),
        )
        request = self.repository.add(request)

        self.audit_logger.log_override_requested(
            request_id=request.id,
            certificate_id=certificate_id,
            requested_by=requested_by,
            reason=reason,
        )
        logger.info(f"Created override request {request.id} for certificate {certificate_id}")
        return request

    def approve(self, request_id: str, approved_by: str) -> OverrideRequest:
        """Approve a pending request.

        Raises:
            OverrideRequestNotFoundError: If the id is unknown
            StateConflictError: If the request was already reviewed
        """
        return self._review(request_id, OverrideStatus.APPROVED, approved_by)

    def reject(self, request_id: str, rejected_by: str) -> OverrideRequest:
        """Reject a pending request.

        Raises:
            OverrideRequestNotFoundError: If the id is unknown
            StateConflictError: If the request was already reviewed
        """
        return self._review(request_id, OverrideStatus.REJECTED, rejected_by)

    def get(self, request_id: str) -> OverrideRequest:
        return self.repository.get(request_id)

    def list(
        self,
        certificate_id: Optional[str] = None,
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideRequest]:
        return self.repository.list(certificate_id=certificate_id, status=status)

    def _review(
        self, request_id: str, status: OverrideStatus, reviewed_by: str
    ) -> OverrideRequest:
        _require(reviewed_by, "reviewed_by")

        try:
            updated = self.repository.transition(
                request_id, status, reviewed_by, self.clock()
            )
        except StateConflictError as e:
            certificate_id = self.repository.get(request_id).certificate_id
            self.audit_logger.log_override_reviewed(
                request_id=request_id,
                certificate_id=certificate_id,
                status=status.value,
                reviewed_by=reviewed_by,
                success=False,
                reason=f"already {e.current_status}",
            )
            raise
        except OverrideRequestNotFoundError:
            logger.warning(f"Review of unknown override request {request_id}")
            raise

        self.audit_logger.log_override_reviewed(
            request_id=updated.id,
            certificate_id=updated.certificate_id,
            status=status.value,
            reviewed_by=reviewed_by,
        )
        logger.info(f"Override request {request_id} {status.value} by {reviewed_by}")
        return updated
