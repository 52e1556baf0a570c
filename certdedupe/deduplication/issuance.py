"""
Issuance Gate

Turns a duplicate decision into a go/no-go for issuing a certificate,
applying the configuration's override policy.
"""

import logging
from typing import Any, Mapping, Optional, Union

from ..config import load_detection_config
from ..errors import DuplicateCertificateError
from ..models import (
    CertificateCandidate,
    DetectionConfig,
    DuplicateAction,
    DuplicateDecision,
    OverrideRequest,
    OverrideStatus,
)
from ..models.detection import WireModel
from .core_engine import DuplicateDetectionEngine

logger = logging.getLogger(__name__)


class IssuanceOutcome(WireModel):
    """Permission to issue, with the duplicate flags to persist on the certificate."""
    decision: Optional[DuplicateDecision] = None
    is_duplicate: bool = False
    override_reason: Optional[str] = None
    overridden_by: Optional[str] = None
    override_request_id: Optional[str] = None


class IssuanceGate:
    """Decides whether a candidate may be issued."""

    def __init__(self, engine: DuplicateDetectionEngine):
        self.engine = engine

    def evaluate(
        self,
        candidate: Union[CertificateCandidate, Mapping[str, Any]],
        config: Union[DetectionConfig, Mapping[str, Any]],
        override_reason: Optional[str] = None,
        override_request: Optional[OverrideRequest] = None,
    ) -> IssuanceOutcome:
        """Check a candidate and apply the override policy.

        Args:
            candidate: The certificate proposed for issuance
            config: Detection configuration
            override_reason: Justification for issuing despite a warning
            override_request: Reviewed request backing the override, needed
                when the configuration requires admin approval

        Returns:
            IssuanceOutcome allowing issuance

        Raises:
            DuplicateCertificateError: If issuance must not proceed
            ConfigurationError: If the configuration is malformed
            StoreError: If the certificate store cannot be read
        """
        config = load_detection_config(config)

        decision = None
        if config.enabled:
            decision = self.engine.check_for_duplicates(candidate, config)
            if decision.is_duplicate:
                self._enforce(decision, config, override_reason, override_request)

        if not override_reason:
            return IssuanceOutcome(decision=decision)

        approver = None
        request_id = None
        if override_request is not None and override_request.status == OverrideStatus.APPROVED:
            approver = override_request.approved_by
            request_id = override_request.id

        logger.info(f"Issuing with override: {override_reason}")
        return IssuanceOutcome(
            decision=decision,
            is_duplicate=True,
            override_reason=override_reason,
            overridden_by=approver,
            override_request_id=request_id,
        )

    def _enforce(
        self,
        decision: DuplicateDecision,
        config: DetectionConfig,
        override_reason: Optional[str],
        override_request: Optional[OverrideRequest],
    ) -> None:
        if decision.action == DuplicateAction.BLOCK:
            raise DuplicateCertificateError(
                "Certificate issuance blocked due to potential duplicate", decision
            )
        if decision.action != DuplicateAction.WARN:
            return

        if not override_reason:
            raise DuplicateCertificateError(
                "Warning: Potential duplicate detected. Override reason required.",
                decision,
                requires_override=True,
            )
        if not config.allow_override:
            raise DuplicateCertificateError(
                "Potential duplicate detected and overrides are disabled", decision
            )
        if config.require_admin_approval and (
            override_request is None or override_request.status != OverrideStatus.APPROVED
        ):
            raise DuplicateCertificateError(
                "Potential duplicate detected. Override requires an approved request.",
                decision,
                requires_override=True,
            )
        if config.require_admin_approval:
            matched_ids = {match.certificate_id for match in decision.matches}
            if override_request.certificate_id not in matched_ids:
                raise DuplicateCertificateError(
                    f"Override request {override_request.id} approves certificate "
                    f"{override_request.certificate_id}, which is not among the matches",
                    decision,
                    requires_override=True,
                )
