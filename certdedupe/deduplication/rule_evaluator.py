"""
Rule Evaluator

Applies a single duplicate rule to the certificate corpus: retrieves the
rule's candidate pool, scores each record over the rule's fields and keeps the
records that reach the rule's threshold.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..errors import ErrorHandler
from ..models import (
    CertificateCandidate,
    CheckField,
    DuplicateMatch,
    DuplicateRule,
    ExistingCertificateView,
    MatchType,
)
from ..repositories import CertificateStore
from .blocking import blocking_keys, shares_block
from .similarity_scoring import SimilarityScorer

logger = logging.getLogger(__name__)

# Fields examined, in order, when naming the kind of a fuzzy match
_MATCH_TYPE_FIELDS = (
    (CheckField.RECIPIENT_EMAIL, MatchType.FUZZY_EMAIL),
    (CheckField.RECIPIENT_NAME, MatchType.FUZZY_NAME),
    (CheckField.TITLE, MatchType.FUZZY_TITLE),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleEvaluator:
    """Produces the matches of one rule against the certificate store."""

    def __init__(
        self,
        store: CertificateStore,
        scorer: Optional[SimilarityScorer] = None,
        clock: Callable[[], datetime] = utcnow,
        error_handler: Optional[ErrorHandler] = None,
        use_blocking: bool = False,
    ):
        """Initialize the evaluator.

        Args:
            store: Certificate corpus to search
            scorer: Field similarity scorer
            clock: Source of "now" for time windows
            error_handler: Wraps store failures into ``StoreError``
            use_blocking: Skip records sharing no blocking key with the candidate
        """
        self.store = store
        self.scorer = scorer or SimilarityScorer()
        self.clock = clock
        self.error_handler = error_handler or ErrorHandler()
        self.use_blocking = use_blocking

    def evaluate(
        self, candidate: CertificateCandidate, rule: DuplicateRule
    ) -> List[DuplicateMatch]:
        """Return every stored certificate the rule considers a duplicate."""
        certificates = self._retrieve(rule)

        if self.use_blocking:
            keys = blocking_keys(candidate, rule.check_fields)
            certificates = [
                cert for cert in certificates
                if shares_block(keys, cert, rule.check_fields)
            ]

        matches: List[DuplicateMatch] = []
        for cert in certificates:
            score = self.score_record(candidate, cert, rule)
            if score >= rule.threshold:
                matches.append(
                    DuplicateMatch(
                        certificate_id=cert.id,
                        issuer_id=cert.issuer_id,
                        recipient_email=cert.recipient_email,
                        recipient_name=cert.recipient_name,
                        title=cert.title,
                        issued_at=cert.issued_at,
                        similarity_score=score,
                        match_type=self.classify_match(candidate, cert, rule),
                        rule_id=rule.id,
                    )
                )

        logger.debug(
            f"Rule {rule.id} scored {len(certificates)} certificates, {len(matches)} matched"
        )
        return matches

    def _retrieve(self, rule: DuplicateRule) -> List[ExistingCertificateView]:
        cutoff = None
        if rule.time_window_days:
            cutoff = self.clock() - timedelta(days=rule.time_window_days)

        with self.error_handler.error_context(
            operation="query_certificates",
            resource_type="rule",
            resource_id=rule.id,
            metadata={"issued_after": cutoff.isoformat() if cutoff else None},
        ):
            try:
                return self.store.query(not_revoked=True, issued_after=cutoff)
            except Exception as e:
                self.error_handler.handle_error(e)

    def score_record(
        self,
        candidate: CertificateCandidate,
        cert: ExistingCertificateView,
        rule: DuplicateRule,
    ) -> float:
        """Mean field score over the rule's fields present on both sides."""
        total = 0.0
        compared = 0

        # Sorted so float summation order does not depend on set iteration
        for field in sorted(rule.check_fields, key=lambda f: f.value):
            new_value = candidate.field_value(field)
            existing_value = cert.field_value(field)
            if not new_value or not existing_value:
                continue

            total += self.scorer.field_score(new_value, existing_value, rule.fuzzy_matching)
            compared += 1

        return total / compared if compared else 0.0

    def classify_match(
        self,
        candidate: CertificateCandidate,
        cert: ExistingCertificateView,
        rule: DuplicateRule,
    ) -> MatchType:
        """Name the field that decisively matched under a fuzzy rule.

        Exact rules always report ``exact``. Fuzzy rules report the first of
        email, name and title whose own fuzzy score reaches the decisive
        threshold, and fall back to ``exact`` when none does.
        """
        if not rule.fuzzy_matching:
            return MatchType.EXACT

        decisive = self.scorer.thresholds.decisive_field
        for field, match_type in _MATCH_TYPE_FIELDS:
            new_value = candidate.field_value(field)
            existing_value = cert.field_value(field)
            if not new_value or not existing_value:
                continue
            if self.scorer.similarity(new_value, existing_value) >= decisive:
                return match_type

        return MatchType.EXACT
