"""Tests for the issuance gate and service facade."""

import pytest
from datetime import timedelta

from certdedupe.deduplication import DuplicateDetectionService, IssuanceGate
from certdedupe.errors import DuplicateCertificateError, OverrideRequestNotFoundError
from certdedupe.models import DuplicateAction, OverrideRequest, OverrideStatus


@pytest.fixture
def gate(engine):
    return IssuanceGate(engine)


@pytest.fixture
def approved_request(now):
    return OverrideRequest(
        id="override_1",
        certificate_id="cert-1",
        reason="Re-issue",
        requested_by="user-1",
        approved_by="admin-1",
        status=OverrideStatus.APPROVED,
        created_at=now - timedelta(hours=1),
        reviewed_at=now,
    )


class TestIssuanceGate:
    """Test go/no-go outcomes."""

    def test_clean_candidate_proceeds(self, gate, candidate, two_rule_config):
        outcome = gate.evaluate(candidate, two_rule_config)

        assert outcome.is_duplicate is False
        assert outcome.override_reason is None
        assert outcome.decision.action == DuplicateAction.ALLOW

    def test_disabled_config_skips_detection(self, gate, store, make_certificate, candidate, two_rule_config):
        store.add(make_certificate())
        config = two_rule_config.model_copy(update={"enabled": False})

        outcome = gate.evaluate(candidate, config)

        assert outcome.decision is None
        assert outcome.is_duplicate is False

    def test_block_refuses_even_with_override(
        self, gate, store, make_certificate, candidate, two_rule_config
    ):
        store.add(make_certificate())

        with pytest.raises(DuplicateCertificateError) as exc_info:
            gate.evaluate(candidate, two_rule_config, override_reason="please")

        assert exc_info.value.requires_override is False
        assert exc_info.value.decision.action == DuplicateAction.BLOCK

    def test_warn_without_reason_requires_override(
        self, gate, store, make_certificate, candidate, warn_config
    ):
        store.add(make_certificate())

        with pytest.raises(DuplicateCertificateError) as exc_info:
            gate.evaluate(candidate, warn_config)

        assert exc_info.value.requires_override is True
        assert exc_info.value.to_dict()["details"]["isDuplicate"] is True

    def test_warn_with_reason_proceeds_as_duplicate(
        self, gate, store, make_certificate, candidate, warn_config
    ):
        store.add(make_certificate())

        outcome = gate.evaluate(candidate, warn_config, override_reason="Name corrected")

        assert outcome.is_duplicate is True
        assert outcome.override_reason == "Name corrected"
        assert outcome.overridden_by is None

    def test_overrides_disabled(self, gate, store, make_certificate, candidate, warn_config):
        store.add(make_certificate())
        config = warn_config.model_copy(update={"allow_override": False})

        with pytest.raises(DuplicateCertificateError) as exc_info:
            gate.evaluate(candidate, config, override_reason="Name corrected")

        assert exc_info.value.requires_override is False

    def test_admin_approval_required(
        self, gate, store, make_certificate, candidate, warn_config, approved_request
    ):
        store.add(make_certificate())
        config = warn_config.model_copy(update={"require_admin_approval": True})
        pending = approved_request.model_copy(
            update={"status": OverrideStatus.PENDING, "approved_by": None}
        )

        with pytest.raises(DuplicateCertificateError):
            gate.evaluate(candidate, config, override_reason="Name corrected")
        with pytest.raises(DuplicateCertificateError):
            gate.evaluate(
                candidate, config, override_reason="Name corrected", override_request=pending
            )

        outcome = gate.evaluate(
            candidate,
            config,
            override_reason="Name corrected",
            override_request=approved_request,
        )
        assert outcome.overridden_by == "admin-1"
        assert outcome.override_request_id == "override_1"

    def test_approved_request_must_name_a_matched_certificate(
        self, gate, store, make_certificate, candidate, warn_config, approved_request
    ):
        store.add(make_certificate())
        config = warn_config.model_copy(update={"require_admin_approval": True})
        unrelated = approved_request.model_copy(update={"certificate_id": "cert-99"})

        with pytest.raises(DuplicateCertificateError) as exc_info:
            gate.evaluate(
                candidate, config, override_reason="Name corrected", override_request=unrelated
            )

        assert exc_info.value.requires_override is True
        assert "cert-99" in str(exc_info.value)

    def test_reason_on_clean_candidate_still_marks_duplicate(
        self, gate, candidate, two_rule_config
    ):
        outcome = gate.evaluate(candidate, two_rule_config, override_reason="belt and braces")

        assert outcome.is_duplicate is True
        assert outcome.override_reason == "belt and braces"


class TestDuplicateDetectionService:
    """Test the facade wiring."""

    @pytest.fixture
    def service(self, store, override_repository, clock, audit_logger):
        return DuplicateDetectionService(
            store, override_repository, clock=clock, audit_logger=audit_logger
        )

    def test_override_round_trip_unlocks_issuance(
        self, service, store, make_certificate, candidate, warn_config
    ):
        cert = store.add(make_certificate())
        config = warn_config.model_copy(update={"require_admin_approval": True})

        request = service.create_override_request(cert.id, "Name corrected", "user-1")
        service.approve_override_request(request.id, "admin-1")

        outcome = service.evaluate_issuance(
            candidate,
            config,
            override_reason="Name corrected",
            override_request_id=request.id,
        )

        assert outcome.is_duplicate is True
        assert outcome.overridden_by == "admin-1"

    def test_unknown_override_request(self, service, candidate, warn_config):
        with pytest.raises(OverrideRequestNotFoundError):
            service.evaluate_issuance(
                candidate, warn_config, override_reason="x", override_request_id="nope"
            )

    def test_reject_through_service(self, service):
        request = service.create_override_request("cert-1", "reason", "user-1")

        rejected = service.reject_override_request(request.id, "admin-1")

        assert rejected.status == OverrideStatus.REJECTED
        assert service.list_override_requests(status=OverrideStatus.REJECTED) == [rejected]

    def test_report_through_service(self, service, store, make_certificate, now):
        store.add(make_certificate(issuer_id="I", is_duplicate=True))

        report = service.generate_duplicate_report(now - timedelta(days=7), now)

        assert report.total_duplicates == 1
        assert report.duplicates_by_issuer["I"] == 1
