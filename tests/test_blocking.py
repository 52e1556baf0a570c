"""Tests for candidate blocking keys."""

import jellyfish

from certdedupe.deduplication import blocking_keys, shares_block
from certdedupe.models import CertificateCandidate, CheckField

ALL_FIELDS = list(CheckField)


class TestBlockingKeys:
    """Test key derivation."""

    def test_keys_for_every_field(self):
        candidate = CertificateCandidate(
            issuer_id="Issuer-1",
            recipient_email="John@Example.com",
            recipient_name="John Smith",
            title="Python Basics",
        )

        keys = blocking_keys(candidate, ALL_FIELDS)

        assert keys == {
            "domain:example.com",
            "name:S530",
            f"title:{jellyfish.soundex('python')}",
            "issuer:issuer-1",
        }

    def test_only_requested_fields(self):
        candidate = CertificateCandidate(recipient_email="john@example.com", issuer_id="i1")

        assert blocking_keys(candidate, [CheckField.ISSUER_ID]) == {"issuer:i1"}

    def test_missing_values_produce_no_keys(self):
        assert blocking_keys(CertificateCandidate(), ALL_FIELDS) == set()

    def test_malformed_email_keyed_whole(self):
        candidate = CertificateCandidate(recipient_email="not-an-email")
        assert blocking_keys(candidate, [CheckField.RECIPIENT_EMAIL]) == {"email:not-an-email"}

    def test_phonetic_name_key_tolerates_typos(self):
        a = CertificateCandidate(recipient_name="Jane Smith")
        b = CertificateCandidate(recipient_name="Jane Smyth")
        fields = [CheckField.RECIPIENT_NAME]

        assert blocking_keys(a, fields) == blocking_keys(b, fields)


class TestSharesBlock:
    """Test pruning decisions."""

    def test_shared_key(self, make_certificate):
        fields = [CheckField.RECIPIENT_EMAIL]
        keys = blocking_keys(CertificateCandidate(recipient_email="jon@example.com"), fields)

        assert shares_block(keys, make_certificate(), fields) is True

    def test_no_shared_key(self, make_certificate):
        fields = [CheckField.RECIPIENT_EMAIL]
        keys = blocking_keys(CertificateCandidate(recipient_email="john@other.org"), fields)

        assert shares_block(keys, make_certificate(), fields) is False

    def test_keyless_candidate_matches_everything(self, make_certificate):
        assert shares_block(set(), make_certificate(), ALL_FIELDS) is True
