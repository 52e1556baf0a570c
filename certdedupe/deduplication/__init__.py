"""
Rule-Based Duplicate Detection for Certificate Issuance

Decides whether a candidate certificate duplicates one already issued, and
what to do about it.

Components:
- Similarity Scoring: Normalized edit-distance similarity with email awareness
- Rule Evaluator: Applies one rule to the certificate store
- Core Engine: Folds every rule's matches into a single decision
- Issuance Gate: Applies the override policy to a decision
- Override Workflow: Pending, approved and rejected override requests
- Reporting: Summaries of flagged certificates over a time range

Usage:
    from certdedupe.deduplication import DuplicateDetectionEngine

    engine = DuplicateDetectionEngine(store)
    decision = engine.check_for_duplicates(candidate, config)
"""

from .core_engine import DuplicateDetectionEngine, governing_rule, build_message
from .similarity_scoring import SimilarityScorer, ConfidenceThresholds
from .rule_evaluator import RuleEvaluator
from .blocking import blocking_keys, shares_block
from .issuance import IssuanceGate, IssuanceOutcome
from .override_workflow import OverrideWorkflow
from .reporting import ReportGenerator, classify_duplicate
from .service import DuplicateDetectionService

__all__ = [
    # Core engine
    "DuplicateDetectionEngine",
    "governing_rule",
    "build_message",
    # Similarity scoring
    "SimilarityScorer",
    "ConfidenceThresholds",
    "RuleEvaluator",
    # Blocking
    "blocking_keys",
    "shares_block",
    # Issuance and overrides
    "IssuanceGate",
    "IssuanceOutcome",
    "OverrideWorkflow",
    # Reporting
    "ReportGenerator",
    "classify_duplicate",
    # Facade
    "DuplicateDetectionService",
]
