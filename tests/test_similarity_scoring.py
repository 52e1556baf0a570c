"""Tests for field similarity scoring."""

import pytest

from certdedupe.deduplication.similarity_scoring import (
    ConfidenceThresholds,
    SimilarityScorer,
    exact_match,
    levenshtein_similarity,
    normalize,
    similarity,
)


class TestNormalize:
    """Test value normalization."""

    def test_trims_and_lowercases(self):
        assert normalize("  John SMITH ") == "john smith"

    def test_none_becomes_empty(self):
        assert normalize(None) == ""


class TestLevenshteinSimilarity:
    """Test normalized edit-distance similarity."""

    def test_known_distance(self):
        """kitten -> sitting is three edits over seven characters."""
        assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_empty_strings(self):
        assert levenshtein_similarity("", "") == 1.0
        assert levenshtein_similarity("", "a") == 0.0
        assert levenshtein_similarity("a", "") == 0.0


class TestSimilarity:
    """Test fuzzy similarity."""

    @pytest.mark.parametrize(
        "value", ["john@example.com", "John Smith", "Blockchain Fundamentals", "x"]
    )
    def test_identical_values_score_one(self, value):
        assert similarity(value, value) == 1.0

    def test_case_and_whitespace_are_ignored(self):
        assert similarity("  JOHN smith", "john Smith ") == 1.0

    def test_empty_values(self):
        assert similarity("", "") == 1.0
        assert similarity("", "a") == 0.0
        assert similarity("a", None) == 0.0

    def test_same_domain_email_gets_domain_share(self):
        """Local parts 0.75 similar on a shared domain score 0.75 * 0.8 + 0.2."""
        score = similarity("john@x.com", "jon@x.com")
        assert score >= 0.8
        assert score == pytest.approx(0.8)

    def test_different_domain_email_stays_below_domain_share(self):
        score = similarity("john@x.com", "john@y.com")
        assert score < 0.8
        assert score == pytest.approx(0.9 * 0.8)

    def test_domain_typo_is_scaled_like_any_cross_domain_pair(self):
        """gmail vs gmial: two edits over fourteen characters, then scaled by 0.8."""
        score = similarity("john@gmail.com", "john@gmial.com")
        assert score == pytest.approx((1 - 2 / 14) * 0.8)
        assert score < 0.85

    def test_malformed_email_uses_plain_distance(self):
        assert similarity("a@b@c", "a@b@d") == pytest.approx(0.8)

    def test_similarity_is_symmetric(self):
        pairs = [
            ("john@x.com", "jon@x.com"),
            ("john@x.com", "johnny@y.org"),
            ("Blockchain Basics", "Blockchain Fundamentals"),
        ]
        for a, b in pairs:
            assert similarity(a, b) == similarity(b, a)

    def test_scores_stay_in_unit_interval(self):
        values = ["a", "john@x.com", "zzz@y.com", "Jane Doe", "completely different"]
        for a in values:
            for b in values:
                assert 0.0 <= similarity(a, b) <= 1.0

    def test_custom_domain_boost(self):
        scorer = SimilarityScorer(ConfidenceThresholds(email_domain_boost=0.5))
        assert scorer.similarity("ab@x.com", "cd@x.com") == pytest.approx(0.5)


class TestExactMatch:
    """Test binary comparison used by non-fuzzy rules."""

    def test_case_insensitive_equality(self):
        assert exact_match("John@Example.com", " john@example.com") == 1.0

    def test_any_difference_is_zero(self):
        assert exact_match("john@example.com", "jon@example.com") == 0.0

    def test_result_is_binary(self):
        values = ["a", "A", "b", "john", "jon", ""]
        for a in values:
            for b in values:
                assert exact_match(a, b) in (0.0, 1.0)

    def test_field_score_dispatches_on_fuzzy_flag(self):
        scorer = SimilarityScorer()
        assert scorer.field_score("john", "jon", fuzzy=False) == 0.0
        assert scorer.field_score("john", "jon", fuzzy=True) == pytest.approx(0.75)
