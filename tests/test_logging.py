"""
Unit tests for structured logging configuration.

Tests verify:
- Logging configuration works for JSON and console output
- Context variables (request_id, fingerprint, provider) are attached
- Credential-like fields are masked before rendering
"""
import json
import logging
from io import StringIO

import pytest

from genrelay.core.logging import (
    configure_logging,
    generate_request_id,
    get_fingerprint,
    get_logger,
    get_provider,
    get_request_id,
    set_fingerprint,
    set_provider,
    set_request_id,
)
from genrelay.core.sanitize import is_sensitive_key, sanitize_mapping, truncate_for_log


@pytest.fixture
def captured_json_log():
    """Configure JSON logging and capture root logger output."""
    configure_logging(log_level="INFO", json_output=True)
    output = StringIO()
    handler = logging.StreamHandler(output)
    handler.setLevel(logging.INFO)
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    def read():
        handler.flush()
        lines = [line for line in output.getvalue().splitlines() if line.strip()]
        return json.loads(lines[-1])

    yield read

    root_logger.removeHandler(handler)
    root_logger.setLevel(previous_level)
    set_request_id(None)
    set_fingerprint(None)
    set_provider(None)


class TestLoggingConfiguration:
    def test_json_output(self, captured_json_log):
        get_logger("genrelay.test").info("test_message", test_field="test_value")
        record = captured_json_log()
        assert record["event"] == "test_message"
        assert record["test_field"] == "test_value"
        assert record["level"] == "info"
        assert record["service"] == "genrelay"
        assert "timestamp" in record

    def test_console_output(self):
        configure_logging(log_level="INFO", json_output=False)
        # Should not raise
        get_logger(__name__).info("test_message", test_field="test_value")


class TestContextVariables:
    def test_request_id_round_trip(self):
        set_request_id("req-1")
        assert get_request_id() == "req-1"
        set_request_id(None)
        assert get_request_id() is None

    def test_generate_request_id_is_unique(self):
        assert generate_request_id() != generate_request_id()

    def test_call_context_in_log(self, captured_json_log):
        set_request_id("req-42")
        set_fingerprint("f" * 64)
        set_provider("gemini")
        assert get_fingerprint() == "f" * 64
        assert get_provider() == "gemini"

        get_logger("genrelay.test").info("with_context")
        record = captured_json_log()
        assert record["request_id"] == "req-42"
        assert record["fingerprint"] == "f" * 16
        assert record["provider"] == "gemini"


class TestRedaction:
    def test_secret_fields_are_masked(self, captured_json_log):
        get_logger("genrelay.test").info(
            "credential_event",
            api_key="AIzaSyABCDEFGH1234",
            access_token="short",
            input_tokens=12,
        )
        record = captured_json_log()
        assert record["api_key"] == "AIza...1234"
        assert record["access_token"] == "****"
        assert record["input_tokens"] == 12

    def test_is_sensitive_key(self):
        assert is_sensitive_key("api_key")
        assert is_sensitive_key("Authorization")
        assert is_sensitive_key("openai_api_key")
        assert not is_sensitive_key("input_tokens")
        assert not is_sensitive_key("provider")

    def test_sanitize_mapping(self):
        payload = {"provider": "gemini", "headers": {"Authorization": "Bearer x"}, "items": [{"secret": 1}]}
        assert sanitize_mapping(payload) == {
            "provider": "gemini",
            "headers": {"Authorization": "[REDACTED]"},
            "items": [{"secret": "[REDACTED]"}],
        }
        assert payload["headers"]["Authorization"] == "Bearer x"

    def test_truncate_for_log(self):
        assert truncate_for_log("abc", 10) == "abc"
        assert truncate_for_log("a" * 20, 5) == "aaaaa..."
        assert truncate_for_log(None) is None
