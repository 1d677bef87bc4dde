"""
Tests for Structured Logging
============================

Tests for:
- Service stamping and secret redaction processors
- LogContext binding and nesting
"""

import structlog

from phonepool import __version__
from phonepool.utils.logger import LogContext, add_service, redact_secrets


class TestProcessors:
    def test_add_service(self):
        event = add_service(None, "info", {"event": "Device released"})
        assert event["service"] == "phonepool"
        assert event["version"] == __version__

    def test_redacts_credentials(self):
        event = redact_secrets(None, "info", {
            "event": "Payment webhook received",
            "signature": "deadbeefcafe",
            "api_token": "1234:AAAsecret",
            "session_id": "s-1",
        })

        assert event["signature"] == "dea********"
        assert "AAAsecret" not in event["api_token"]
        assert event["session_id"] == "s-1"
        assert event["event"] == "Payment webhook received"


class TestLogContext:
    def setup_method(self):
        structlog.contextvars.clear_contextvars()

    def teardown_method(self):
        structlog.contextvars.clear_contextvars()

    def test_binds_and_unbinds(self):
        with LogContext(session_id="s-1"):
            assert structlog.contextvars.get_contextvars() == {"session_id": "s-1"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_restores_outer_values(self):
        with LogContext(request_id="r-1", session_id="outer"):
            with LogContext(session_id="inner"):
                assert structlog.contextvars.get_contextvars() == {"request_id": "r-1", "session_id": "inner"}
            assert structlog.contextvars.get_contextvars() == {"request_id": "r-1", "session_id": "outer"}
