"""Smoke tests for the command-line interface."""

import json
import logging

import pytest
from datetime import datetime, timedelta, timezone

from certdedupe.cli import EXIT_BLOCK, EXIT_ERROR, EXIT_OK, EXIT_WARN, main


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The CLI reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "certs.db")


@pytest.fixture
def write_json(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return str(path)

    return _write


@pytest.fixture
def issued(db, write_json, capsys):
    """Import one recently issued certificate and one flagged duplicate."""
    now = datetime.now(timezone.utc)
    certificates = [
        {
            "id": "cert-1",
            "issuerId": "issuer-1",
            "recipientEmail": "john@example.com",
            "recipientName": "John Smith",
            "title": "Blockchain Fundamentals",
            "issuedAt": (now - timedelta(days=1)).isoformat(),
        },
        {
            "id": "cert-2",
            "issuerId": "issuer-1",
            "recipientEmail": "john@example.com",
            "recipientName": "John Smith",
            "title": "Blockchain Fundamentals",
            "issuedAt": (now - timedelta(hours=2)).isoformat(),
            "isDuplicate": True,
            "overrideReason": "Name corrected",
        },
    ]
    assert main(["--db", db, "import", write_json("certs.json", certificates)]) == EXIT_OK
    capsys.readouterr()
    return now


@pytest.fixture
def duplicate_candidate(write_json):
    return write_json(
        "candidate.json",
        {
            "issuerId": "issuer-1",
            "recipientEmail": "john@example.com",
            "recipientName": "John Smith",
            "title": "Blockchain Fundamentals",
        },
    )


class TestCheck:
    """Test the check command exit codes."""

    def test_exact_duplicate_blocks(self, db, issued, duplicate_candidate, capsys):
        code = main(["--db", db, "check", duplicate_candidate, "--json"])

        decision = json.loads(capsys.readouterr().out)
        assert code == EXIT_BLOCK
        assert decision["isDuplicate"] is True
        assert decision["action"] == "block"
        assert decision["matches"][0]["ruleId"] == "exact_match"

    def test_lenient_preset_warns(self, db, issued, duplicate_candidate):
        assert main(["--db", db, "check", duplicate_candidate, "--preset", "lenient"]) == EXIT_WARN

    def test_unrelated_candidate_allowed(self, db, issued, write_json, capsys):
        candidate = write_json(
            "other.json",
            {
                "issuerId": "issuer-9",
                "recipientEmail": "maria.garcia@university.edu",
                "recipientName": "Maria Garcia",
                "title": "Advanced Rust Programming",
            },
        )

        assert main(["--db", db, "check", candidate]) == EXIT_OK
        assert "ALLOW" in capsys.readouterr().out

    def test_config_file_can_disable_detection(self, db, issued, duplicate_candidate, write_json):
        config = write_json("config.json", {"enabled": False})

        assert main(["--db", db, "check", duplicate_candidate, "-c", config]) == EXIT_OK

    def test_invalid_config_is_an_error(self, db, issued, duplicate_candidate, write_json, capsys):
        config = write_json("config.json", {"rules": [{"id": "r", "name": "r", "action": "warn",
                                                        "threshold": 3, "checkFields": ["title"]}]})

        assert main(["--db", db, "check", duplicate_candidate, "-c", config]) == EXIT_ERROR
        assert "Invalid detection configuration" in capsys.readouterr().out

    def test_missing_candidate_file(self, db, tmp_path):
        assert main(["--db", db, "check", str(tmp_path / "absent.json")]) == EXIT_ERROR


class TestReport:
    """Test the report command."""

    def test_report_counts_flagged(self, db, issued, capsys):
        start = (issued - timedelta(days=7)).isoformat()
        end = (issued + timedelta(minutes=1)).isoformat()

        code = main(["--db", db, "report", "--start", start, "--end", end, "--json"])

        report = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert report["totalDuplicates"] == 1
        assert report["duplicatesByIssuer"] == {"issuer-1": 1}
        assert report["duplicatesByType"] == {"fuzzy": 1}

    def test_inverted_range(self, db):
        assert main(
            ["--db", db, "report", "--start", "2024-02-01", "--end", "2024-01-01"]
        ) == EXIT_ERROR

    def test_bad_timestamp(self, db):
        assert main(["--db", db, "report", "--start", "yesterday", "--end", "2024-01-01"]) == EXIT_ERROR


class TestOverride:
    """Test the override commands."""

    def test_create_approve_and_conflict(self, db, capsys):
        assert main(
            ["--db", db, "override", "--json", "create", "cert-1", "--reason", "Re-issue", "--user", "user-1"]
        ) == EXIT_OK
        created = json.loads(capsys.readouterr().out)
        assert created["status"] == "pending"

        assert main(["--db", db, "override", "--json", "approve", created["id"], "--user", "admin-1"]) == EXIT_OK
        approved = json.loads(capsys.readouterr().out)
        assert approved["status"] == "approved"
        assert approved["approvedBy"] == "admin-1"

        assert main(["--db", db, "override", "reject", created["id"], "--user", "admin-2"]) == EXIT_ERROR
        assert "already been reviewed" in capsys.readouterr().out

    def test_list(self, db, capsys):
        main(["--db", db, "override", "create", "cert-1", "--reason", "r", "--user", "u"])
        main(["--db", db, "override", "create", "cert-2", "--reason", "r", "--user", "u"])
        capsys.readouterr()

        assert main(["--db", db, "override", "--json", "list", "--certificate-id", "cert-2"]) == EXIT_OK

        listed = json.loads(capsys.readouterr().out)
        assert [r["certificateId"] for r in listed] == ["cert-2"]


class TestConfigTemplate:
    """Test template generation."""

    def test_template_is_loadable(self, tmp_path, db, issued, duplicate_candidate):
        template = str(tmp_path / "strict.json")

        assert main(["config-template", template, "--preset", "strict"]) == EXIT_OK
        assert json.loads(open(template).read())["allowOverride"] is False
        assert main(["--db", db, "check", duplicate_candidate, "-c", template]) == EXIT_BLOCK


def test_no_command_prints_help(capsys):
    assert main([]) == EXIT_ERROR
    assert "certdedupe" in capsys.readouterr().out
