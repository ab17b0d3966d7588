"""
Tests for log formatting.
"""

import json
import logging

import pytest

from app.logging_config import (
    HumanReadableFormatter,
    StructuredFormatter,
    mask_secret,
    request_id_context,
    set_request_id,
)


def make_record(message="Token created", level=logging.INFO, extra_fields=None):
    record = logging.LogRecord(
        name="app.services.token_service",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


@pytest.fixture(autouse=True)
def clear_request_id():
    yield
    request_id_context.set(None)


class TestMaskSecret:
    def test_mask_secret(self):
        assert mask_secret(None) == ""
        assert mask_secret("short") == "***"
        assert mask_secret("session-cookie-value") == "session-..."


class TestStructuredFormatter:
    """Test JSON log lines."""

    def test_record_ids_are_top_level(self):
        formatter = StructuredFormatter("token-manager")
        record = make_record(extra_fields={"token_id": "t-1", "user_id": "u-1", "imported": 3})

        data = json.loads(formatter.format(record))

        assert data["service"] == "token-manager"
        assert data["message"] == "Token created"
        assert data["token_id"] == "t-1"
        assert data["user_id"] == "u-1"
        assert data["context"] == {"imported": 3}
        assert "location" not in data

    def test_credentials_are_masked(self):
        formatter = StructuredFormatter("token-manager")
        record = make_record(
            extra_fields={"access_token": "tok_1234567890abcdef", "session_token": None}
        )

        data = json.loads(formatter.format(record))

        assert data["context"] == {"access_token": "tok_1234...", "session_token": None}

    def test_request_id_and_location(self):
        set_request_id("req-42")
        formatter = StructuredFormatter("token-manager")

        data = json.loads(formatter.format(make_record(level=logging.WARNING)))

        assert data["request_id"] == "req-42"
        assert data["location"].endswith(":10")
        assert "context" not in data


class TestHumanReadableFormatter:
    def test_fields_are_appended_masked(self):
        set_request_id("abcdef0123456789")
        formatter = HumanReadableFormatter()
        record = make_record(extra_fields={"token_id": "t-1", "auth_session": "auth-session-xyz"})

        line = formatter.format(record)

        assert "[req:abcdef01]" in line
        assert "Token created" in line
        assert "token_id=t-1" in line
        assert "auth_session=auth-ses..." in line
