"""Tests for structured logging."""

import json
import logging

from certdedupe.logging_config import (
    StructuredFormatter,
    Timer,
    log_context,
    log_performance,
    mask_email,
    setup_logging,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("certdedupe.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test JSON log formatting."""

    def test_formats_json(self):
        data = json.loads(StructuredFormatter().format(_record(rule_id="exact")))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "certdedupe.test"
        assert data["rule_id"] == "exact"

    def test_redacts_sensitive_fields(self):
        data = json.loads(StructuredFormatter().format(_record(api_token="secret-value")))

        assert data["api_token"] == "[REDACTED]"

    def test_masks_recipient_email(self):
        data = json.loads(
            StructuredFormatter().format(_record(recipient_email="john@example.com"))
        )

        assert data["recipient_email"] == "j***@example.com"

    def test_mask_email_without_at_sign(self):
        assert mask_email("not-an-email") == "***"

    def test_includes_log_context(self):
        with log_context(issuer_id="issuer-1"):
            inside = json.loads(StructuredFormatter().format(_record()))
        outside = json.loads(StructuredFormatter().format(_record()))

        assert inside["issuer_id"] == "issuer-1"
        assert "issuer_id" not in outside


class TestHelpers:
    """Test logging helpers."""

    def test_timer_measures_duration(self):
        with Timer() as timer:
            pass

        assert timer.duration_ms is not None
        assert timer.duration_ms >= 0

    def test_log_performance(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="certdedupe.perf"):
            log_performance("certdedupe.perf", "duplicate_check", 12.5, match_count=2)

        [record] = caplog.records
        assert record.duration_ms == 12.5
        assert record.match_count == 2
        assert "duplicate_check completed" in record.getMessage()

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "certdedupe.log"
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level

        try:
            setup_logging(format="json", level="INFO", log_file=str(log_file))
            logging.getLogger("certdedupe.test").info("written")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "written"
