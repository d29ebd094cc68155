"""Tests for logging configuration."""

import json
import logging

from planchat.logging_config import ConsoleFormatter, JSONFormatter, setup_logging


def _record(msg="Test message", **extra):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSON log formatter."""

    def test_basic_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data

    def test_request_fields(self):
        """Test HTTP request fields are included."""
        record = _record("Request", method="POST", path="/api/planning", status_code=200, duration_ms=150.5)

        data = json.loads(JSONFormatter().format(record))

        assert data["method"] == "POST"
        assert data["path"] == "/api/planning"
        assert data["status_code"] == 200
        assert data["duration_ms"] == 150.5

    def test_conversation_fields(self):
        record = _record(
            "Adopted backend planning session",
            conversation_id="conv-1",
            backend_conversation_id="modal-1",
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["conversation_id"] == "conv-1"
        assert data["backend_conversation_id"] == "modal-1"

    def test_unknown_extras_are_ignored(self):
        data = json.loads(JSONFormatter().format(_record(secret="x")))
        assert "secret" not in data


class TestConsoleFormatter:
    """Tests for console log formatter."""

    def test_basic_format(self):
        output = ConsoleFormatter().format(_record())

        assert "INFO" in output
        assert "Test message" in output
        assert "test" in output

    def test_extra_fields_in_brackets(self):
        output = ConsoleFormatter().format(_record("Request", method="POST", path="/api/planning"))

        assert "POST /api/planning" in output
        assert "[" in output

    def test_conversation_id_is_shortened(self):
        output = ConsoleFormatter().format(
            _record("Sending planning message", conversation_id="0123456789abcdef")
        )

        assert "conversation=01234567..." in output
        assert "0123456789abcdef" not in output


class TestSetupLogging:
    """Tests for logging setup."""

    def test_setup_creates_handler(self):
        setup_logging(debug=True, json_logs=False)
        assert len(logging.getLogger().handlers) >= 1

    def test_debug_mode_sets_debug_level(self):
        setup_logging(debug=True, json_logs=False)
        assert logging.getLogger().level == logging.DEBUG

    def test_non_debug_sets_info_level(self):
        setup_logging(debug=False, json_logs=False)
        assert logging.getLogger().level == logging.INFO

    def test_json_logs_use_json_formatter(self):
        setup_logging(debug=False, json_logs=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)
