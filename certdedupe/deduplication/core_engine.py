"""
Core Duplicate Detection Engine

Runs every enabled rule of a configuration against the certificate store and
folds the matches into a single decision: is the candidate a duplicate, how
confident is that verdict, and should issuance be blocked, warned or allowed.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..config import load_detection_config
from ..errors import ErrorHandler, ValidationError
from ..logging_config import Timer, log_performance
from ..models import (
    CertificateCandidate,
    DetectionConfig,
    DuplicateAction,
    DuplicateDecision,
    DuplicateMatch,
    DuplicateRule,
)
from ..repositories import CertificateStore
from ..security.audit import AuditLogger
from .rule_evaluator import RuleEvaluator, utcnow
from .similarity_scoring import SimilarityScorer

logger = logging.getLogger(__name__)


def _as_candidate(candidate: Union[CertificateCandidate, Mapping[str, Any]]) -> CertificateCandidate:
    if isinstance(candidate, CertificateCandidate):
        return candidate
    try:
        return CertificateCandidate.model_validate(dict(candidate))
    except (PydanticValidationError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid candidate certificate: {e}", field="candidate") from e


def governing_rule(rules: Sequence[DuplicateRule]) -> Optional[DuplicateRule]:
    """Enabled rule with the highest priority; ties go to the smallest id."""
    enabled = [rule for rule in rules if rule.enabled]
    if not enabled:
        return None
    return min(enabled, key=lambda rule: (-rule.priority, rule.id))


def build_message(matches: Sequence[DuplicateMatch], action: DuplicateAction) -> str:
    """Human-readable summary phrased for the resolved action."""
    if not matches or action == DuplicateAction.ALLOW:
        return ""

    count = len(matches)
    highest = max(match.similarity_score for match in matches)
    percent = math.floor(highest * 100 + 0.5)

    if action == DuplicateAction.BLOCK:
        return (
            f"Certificate issuance blocked: Found {count} potential duplicate(s) "
            f"with up to {percent}% similarity."
        )
    return (
        f"Warning: Found {count} potential duplicate(s) with up to {percent}% "
        f"similarity. Proceed with caution."
    )


class DuplicateDetectionEngine:
    """
    Rule-based duplicate detection for certificate issuance.

    Every call takes its configuration as an immutable value; the engine keeps
    no per-call state, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        store: CertificateStore,
        scorer: Optional[SimilarityScorer] = None,
        clock: Callable[[], datetime] = utcnow,
        audit_logger: Optional[AuditLogger] = None,
        error_handler: Optional[ErrorHandler] = None,
        max_workers: int = 1,
        use_blocking: bool = False,
    ):
        """Initialize the engine.

        Args:
            store: Certificate corpus to search
            scorer: Field similarity scorer
            clock: Source of "now" for rule time windows
            audit_logger: Structured audit trail for flagged candidates
            error_handler: Wraps store failures into ``StoreError``
            max_workers: Evaluate rules on a thread pool of this size when > 1
            use_blocking: Prune records sharing no blocking key with the candidate
        """
        self.scorer = scorer or SimilarityScorer()
        self.audit_logger = audit_logger or AuditLogger()
        self.error_handler = error_handler or ErrorHandler(self.audit_logger)
        self.evaluator = RuleEvaluator(
            store,
            scorer=self.scorer,
            clock=clock,
            error_handler=self.error_handler,
            use_blocking=use_blocking,
        )
        self.max_workers = max(1, max_workers)

    def check_for_duplicates(
        self,
        candidate: Union[CertificateCandidate, Mapping[str, Any]],
        config: Union[DetectionConfig, Mapping[str, Any]],
    ) -> DuplicateDecision:
        """
        Decide whether a candidate duplicates an issued certificate.

        Args:
            candidate: The certificate proposed for issuance
            config: Detection configuration; mappings are validated first

        Returns:
            DuplicateDecision with matches, confidence and resolved action

        Raises:
            ConfigurationError: If the configuration is malformed
            StoreError: If the certificate store cannot be read
        """
        config = load_detection_config(config)
        candidate = _as_candidate(candidate)

        if not config.enabled:
            return DuplicateDecision(
                is_duplicate=False,
                confidence=0.0,
                matches=(),
                action=DuplicateAction.ALLOW,
                message="",
            )

        rules = config.enabled_rules
        with Timer() as timer:
            matches = self._evaluate_rules(candidate, rules)

        confidence = max((match.similarity_score for match in matches), default=0.0)
        threshold = self.scorer.thresholds.duplicate
        is_duplicate = bool(matches) and confidence >= threshold

        action = DuplicateAction.ALLOW
        if is_duplicate:
            rule = governing_rule(rules)
            action = rule.action if rule else DuplicateAction.ALLOW

        decision = DuplicateDecision(
            is_duplicate=is_duplicate,
            confidence=confidence,
            matches=tuple(matches),
            action=action,
            message=build_message(matches, action),
        )

        log_performance(
            __name__,
            "duplicate_check",
            timer.duration_ms,
            rules_evaluated=len(rules),
            match_count=len(matches),
        )

        if is_duplicate and config.log_duplicates:
            self.audit_logger.log_duplicate_decision(
                issuer_id=candidate.issuer_id,
                recipient_email=candidate.recipient_email,
                action=action.value,
                confidence=confidence,
                matched_certificate_ids=[m.certificate_id for m in matches],
                rule_ids=sorted({m.rule_id for m in matches if m.rule_id}),
            )

        return decision

    def _evaluate_rules(
        self, candidate: CertificateCandidate, rules: Sequence[DuplicateRule]
    ) -> List[DuplicateMatch]:
        """Run each rule and concatenate matches in configuration order."""
        if self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                per_rule = list(
                    pool.map(lambda rule: self.evaluator.evaluate(candidate, rule), rules)
                )
        else:
            per_rule = [self.evaluator.evaluate(candidate, rule) for rule in rules]

        return [match for rule_matches in per_rule for match in rule_matches]
