"""Single entry point wiring the engine, override workflow and reports together."""

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from ..errors import ErrorHandler
from ..models import (
    CertificateCandidate,
    DetectionConfig,
    DuplicateDecision,
    DuplicateReport,
    OverrideRequest,
    OverrideStatus,
)
from ..repositories import CertificateStore, OverrideRequestRepository
from ..security.audit import AuditLogger
from .core_engine import DuplicateDetectionEngine
from .issuance import IssuanceGate, IssuanceOutcome
from .override_workflow import OverrideWorkflow
from .reporting import ReportGenerator
from .rule_evaluator import utcnow

logger = logging.getLogger(__name__)


class DuplicateDetectionService:
    """Duplicate detection operations over one certificate store and override ledger."""

    def __init__(
        self,
        certificate_store: CertificateStore,
        override_repository: OverrideRequestRepository,
        clock: Callable[[], datetime] = utcnow,
        audit_logger: Optional[AuditLogger] = None,
        max_workers: int = 1,
        use_blocking: bool = False,
    ):
        self.audit_logger = audit_logger or AuditLogger()
        self.error_handler = ErrorHandler(self.audit_logger)
        self.engine = DuplicateDetectionEngine(
            certificate_store,
            clock=clock,
            audit_logger=self.audit_logger,
            error_handler=self.error_handler,
            max_workers=max_workers,
            use_blocking=use_blocking,
        )
        self.overrides = OverrideWorkflow(
            override_repository, clock=clock, audit_logger=self.audit_logger
        )
        self.reports = ReportGenerator(
            certificate_store, clock=clock, error_handler=self.error_handler
        )
        self.gate = IssuanceGate(self.engine)

    def check_for_duplicates(
        self,
        candidate: Union[CertificateCandidate, Mapping[str, Any]],
        config: Union[DetectionConfig, Mapping[str, Any]],
    ) -> DuplicateDecision:
        return self.engine.check_for_duplicates(candidate, config)

    def generate_duplicate_report(self, start: datetime, end: datetime) -> DuplicateReport:
        return self.reports.generate_report(start, end)

    def create_override_request(
        self, certificate_id: str, reason: str, requested_by: str
    ) -> OverrideRequest:
        return self.overrides.create(certificate_id, reason, requested_by)

    def approve_override_request(self, request_id: str, approved_by: str) -> OverrideRequest:
        return self.overrides.approve(request_id, approved_by)

    def reject_override_request(self, request_id: str, rejected_by: str) -> OverrideRequest:
        return self.overrides.reject(request_id, rejected_by)

    def get_override_request(self, request_id: str) -> OverrideRequest:
        return self.overrides.get(request_id)

    def list_override_requests(
        self,
        certificate_id: Optional[str] = None,
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideRequest]:
        return self.overrides.list(certificate_id=certificate_id, status=status)

    def evaluate_issuance(
        self,
        candidate: Union[CertificateCandidate, Mapping[str, Any]],
        config: Union[DetectionConfig, Mapping[str, Any]],
        override_reason: Optional[str] = None,
        override_request_id: Optional[str] = None,
    ) -> IssuanceOutcome:
        """Gate a candidate, resolving the backing override request by id.

        Raises:
            DuplicateCertificateError: If issuance must not proceed
            OverrideRequestNotFoundError: If ``override_request_id`` is unknown
        """
        override_request = None
        if override_request_id:
            override_request = self.overrides.get(override_request_id)
        return self.gate.evaluate(
            candidate,
            config,
            override_reason=override_reason,
            override_request=override_request,
        )
