"""
Similarity Scoring System

Normalized Levenshtein similarity for certificate fields, with a domain-aware
variant for email addresses and a binary comparison for exact rules.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jellyfish

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Score cut-offs used when classifying and judging matches."""

    # Global bar a decision's confidence must reach to count as a duplicate
    duplicate: float = 0.7
    # A single field at or above this is called a fuzzy match on that field
    decisive_field: float = 0.9
    # Weight of the domain prior when two emails share a domain
    email_domain_boost: float = 0.2


def normalize(value: Optional[str]) -> str:
    """Trim and lowercase a field value; ``None`` becomes empty."""
    return (value or "").strip().lower()


def levenshtein_similarity(a: str, b: str) -> float:
    """``1 - distance / max(len)``, 1.0 for two empty strings."""
    if not a:
        return 1.0 if not b else 0.0
    if not b:
        return 0.0

    distance = jellyfish.levenshtein_distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


def _split_email(value: str):
    if value.count("@") != 1:
        return None
    return value.split("@")


class SimilarityScorer:
    """
    Field-level similarity for duplicate rules.

    Fuzzy scores are normalized edit-distance similarities in [0, 1]. Two
    email-shaped values on the same domain score ``0.8 * local + 0.2``;
    on different domains the generic score is scaled by 0.8, so the pair
    never earns the domain share. Exact scores are strictly 0.0 or 1.0.
    """

    def __init__(self, thresholds: Optional[ConfidenceThresholds] = None):
        """Initialize the similarity scorer."""
        self.thresholds = thresholds or ConfidenceThresholds()

    def similarity(self, a: Optional[str], b: Optional[str]) -> float:
        """Fuzzy similarity between two field values."""
        s1 = normalize(a)
        s2 = normalize(b)

        if s1 == s2:
            return 1.0
        if not s1 or not s2:
            return 0.0

        email_a = _split_email(s1)
        email_b = _split_email(s2)
        if email_a and email_b:
            boost = self.thresholds.email_domain_boost
            if email_a[1] == email_b[1]:
                local = levenshtein_similarity(email_a[0], email_b[0])
                return local * (1.0 - boost) + boost
            return levenshtein_similarity(s1, s2) * (1.0 - boost)

        return levenshtein_similarity(s1, s2)

    def exact_match(self, a: Optional[str], b: Optional[str]) -> float:
        """Case-insensitive, trimmed equality as 1.0 or 0.0."""
        return 1.0 if normalize(a) == normalize(b) else 0.0

    def field_score(self, a: Optional[str], b: Optional[str], fuzzy: bool) -> float:
        """Score two values the way a rule with ``fuzzy_matching=fuzzy`` would."""
        if fuzzy:
            return self.similarity(a, b)
        return self.exact_match(a, b)


_default_scorer = SimilarityScorer()


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Module-level shortcut for :meth:`SimilarityScorer.similarity`."""
    return _default_scorer.similarity(a, b)


def exact_match(a: Optional[str], b: Optional[str]) -> float:
    """Module-level shortcut for :meth:`SimilarityScorer.exact_match`."""
    return _default_scorer.exact_match(a, b)
