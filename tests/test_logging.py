"""Tests for logging configuration."""

import json
from collections.abc import Iterator

import pytest
from loguru import logger

from workspace_broker.logging import audit_authorization_failed, configure_logging


@pytest.fixture
def json_logging() -> Iterator[None]:
    configure_logging(is_production=True, log_level="INFO")
    yield
    configure_logging(is_production=False, log_level="INFO")


def _entries(out: str) -> list[dict]:
    return [json.loads(line) for line in out.splitlines() if line.strip()]


class TestProductionLogging:
    """Tests for the Cloud Logging JSON sink."""

    def test_json_entry(self, json_logging: None, capsys: pytest.CaptureFixture[str]) -> None:
        """Each record is one JSON object with a Cloud Logging severity."""
        logger.warning("Token file unreadable")
        [entry] = _entries(capsys.readouterr().out)
        assert entry["severity"] == "WARNING"
        assert entry["message"] == "Token file unreadable"
        assert "time" in entry

    def test_level_filter(self, json_logging: None, capsys: pytest.CaptureFixture[str]) -> None:
        logger.debug("hidden")
        assert _entries(capsys.readouterr().out) == []

    def test_audit_event(self, json_logging: None, capsys: pytest.CaptureFixture[str]) -> None:
        """Audit helpers tag records with the event name and account."""
        audit_authorization_failed("first.user@gmail.com", "setup_secret_mismatch")
        [entry] = _entries(capsys.readouterr().out)
        assert entry["severity"] == "WARNING"
        assert entry["audit_event"] == "authorization_failed"
        assert entry["account"] == "first.user@gmail.com"
        assert entry["reason"] == "setup_secret_mismatch"
        assert "extra" not in entry

    def test_error_has_source_location(
        self, json_logging: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        logger.error("Startup failed")
        [entry] = _entries(capsys.readouterr().out)
        assert "logging.googleapis.com/sourceLocation" in entry

    def test_credentials_redacted(
        self, json_logging: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Credential-bearing fields never reach the log line."""
        logger.info(
            "Token saved",
            extra={"account": "first.user@gmail.com", "refresh_token": "1//secret-value"},
        )
        out = capsys.readouterr().out
        [entry] = _entries(out)
        assert entry["account"] == "first.user@gmail.com"
        assert entry["refresh_token"] == "[redacted]"
        assert "1//secret-value" not in out

    def test_exception_stack_trace(
        self, json_logging: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """logger.exception output carries the traceback for Error Reporting."""
        try:
            raise ValueError("bad token file")
        except ValueError:
            logger.exception("Startup failed")
        [entry] = _entries(capsys.readouterr().out)
        assert entry["severity"] == "ERROR"
        assert entry["error_type"] == "ValueError"
        assert "ValueError: bad token file" in entry["stack_trace"]
