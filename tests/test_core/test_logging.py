"""Tests for sugarwatch/core/logging.py — secret redaction, renderer setup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from sugarwatch.core.config import reset_settings
from sugarwatch.core.logging import REDACTED, redact_secrets, setup_logging


@pytest.fixture
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    reset_settings()
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestRedactSecrets:
    def test_top_level_key(self) -> None:
        out = redact_secrets(None, "info", {"event": "x", "api_secret": "hunter2"})
        assert out["api_secret"] == REDACTED
        assert out["event"] == "x"

    def test_header_spelling(self) -> None:
        out = redact_secrets(None, "info", {"api-secret": "abc", "API_SECRET": "def"})
        assert out["api-secret"] == REDACTED
        assert out["API_SECRET"] == REDACTED

    def test_nested_headers(self) -> None:
        out = redact_secrets(None, "info", {
            "headers": {"api-secret": "abc", "Accept": "application/json"},
        })
        assert out["headers"] == {"api-secret": REDACTED, "Accept": "application/json"}

    def test_other_fields_untouched(self) -> None:
        event = {"event": "reading_received", "value": 120, "trend": "Flat"}
        assert redact_secrets(None, "info", dict(event)) == event


class TestSetupLogging:
    @pytest.mark.usefixtures("_restore_logging")
    def test_json_output_is_redacted(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", fmt="json")
        structlog.stdlib.get_logger("sugarwatch.test").info(
            "client_configured", api_secret="hunter2", base_url="https://ns.example.com",
        )
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "client_configured"
        assert record["api_secret"] == REDACTED
        assert record["logger"] == "sugarwatch.test"
        assert record["level"] == "info"
        assert "hunter2" not in line

    @pytest.mark.usefixtures("_restore_logging")
    def test_httpx_kept_quiet(self) -> None:
        setup_logging(level="DEBUG", fmt="console")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
