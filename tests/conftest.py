"""Test configuration and fixtures for duplicate detection tests."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from certdedupe.deduplication import DuplicateDetectionEngine
from certdedupe.models import (
    CertificateCandidate,
    CertificateStatus,
    DetectionConfig,
    DuplicateAction,
    DuplicateRule,
    CheckField,
    ExistingCertificateView,
)
from certdedupe.repositories import InMemoryCertificateStore, InMemoryOverrideRequestRepository
from certdedupe.security.audit import AuditLogger

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep CERTDEDUPE_* variables from the host out of every test."""
    for key in (
        "CERTDEDUPE_ENABLED",
        "CERTDEDUPE_DEFAULT_ACTION",
        "CERTDEDUPE_ALLOW_OVERRIDE",
        "CERTDEDUPE_REQUIRE_ADMIN_APPROVAL",
        "CERTDEDUPE_LOG_DUPLICATES",
        "CERTDEDUPE_DB",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_certificate():
    """Factory for stored certificates, issued one day before NOW by default."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "id": f"cert-{counter['n']}",
            "issuer_id": "issuer-1",
            "recipient_email": "john@example.com",
            "recipient_name": "John Smith",
            "title": "Blockchain Fundamentals",
            "issued_at": NOW - timedelta(days=1),
            "status": CertificateStatus.ACTIVE,
        }
        data.update(overrides)
        return ExistingCertificateView(**data)

    return _make


@pytest.fixture
def candidate():
    return CertificateCandidate(
        issuer_id="issuer-1",
        recipient_email="john@example.com",
        recipient_name="John Smith",
        title="Blockchain Fundamentals",
    )


@pytest.fixture
def store():
    return InMemoryCertificateStore()


@pytest.fixture
def override_repository():
    return InMemoryOverrideRequestRepository()


@pytest.fixture
def audit_logger():
    return Mock(spec=AuditLogger)


@pytest.fixture
def engine(store, clock, audit_logger):
    return DuplicateDetectionEngine(store, clock=clock, audit_logger=audit_logger)


@pytest.fixture
def exact_rule():
    return DuplicateRule(
        id="exact",
        name="Exact",
        action=DuplicateAction.BLOCK,
        threshold=1.0,
        check_fields={
            CheckField.RECIPIENT_EMAIL,
            CheckField.RECIPIENT_NAME,
            CheckField.TITLE,
            CheckField.ISSUER_ID,
        },
        fuzzy_matching=False,
        priority=100,
    )


@pytest.fixture
def fuzzy_email_rule():
    return DuplicateRule(
        id="fuzzy-email",
        name="Fuzzy Email",
        action=DuplicateAction.WARN,
        threshold=0.8,
        check_fields={CheckField.RECIPIENT_EMAIL},
        fuzzy_matching=True,
        priority=80,
    )


@pytest.fixture
def two_rule_config(exact_rule, fuzzy_email_rule):
    return DetectionConfig(rules=(exact_rule, fuzzy_email_rule))


@pytest.fixture
def warn_config(fuzzy_email_rule):
    return DetectionConfig(rules=(fuzzy_email_rule,))
