"""Tests for multilogue logging setup."""

from __future__ import annotations

import logging
import re

import pytest

from multilogue.log import CHATTY_LOGGERS, MASK, SecretFilter, redact, setup_logging


def _cli_handlers() -> list[logging.Handler]:
    return [h for h in logging.getLogger().handlers if type(h).__name__ == "_CliHandler"]


class TestSetupLogging:
    """Tests for the setup_logging function."""

    def test_sets_root_level(self) -> None:
        """setup_logging('DEBUG') must set root logger to DEBUG."""
        setup_logging("DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_accepts_lowercase(self) -> None:
        setup_logging("warning")

        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level_raises(self) -> None:
        """An unrecognised level string must raise ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logging("INVALID")

    def test_repeated_calls_reuse_one_handler(self) -> None:
        setup_logging("INFO")
        setup_logging("ERROR")

        handlers = _cli_handlers()
        assert len(handlers) == 1
        assert handlers[0].level == logging.ERROR

    def test_chatty_loggers_held_at_warning(self) -> None:
        setup_logging("INFO")

        assert all(logging.getLogger(name).level == logging.WARNING for name in CHATTY_LOGGERS)

    def test_debug_releases_chatty_loggers(self) -> None:
        setup_logging("INFO")
        setup_logging("DEBUG")

        assert all(logging.getLogger(name).level == logging.NOTSET for name in CHATTY_LOGGERS)

    def test_log_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Log lines are pipe-separated with an ISO 8601 timestamp."""
        setup_logging("INFO")

        logging.getLogger("multilogue.test").info("hello there")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert re.match(
            r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2} \| INFO     \| multilogue\.test \| hello there$",
            line,
        )


class TestRedaction:
    """Registered credentials never appear in log output."""

    def test_redacted_secret_is_masked(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("INFO")
        redact("sk-secret-123", None, "  ")

        logging.getLogger("httpx.test").warning("GET https://x.test/?key=%s failed", "sk-secret-123")

        err = capsys.readouterr().err
        assert "sk-secret-123" not in err
        assert f"key={MASK} failed" in err

    def test_redact_before_setup_is_a_no_op(self) -> None:
        redact("sk-secret-123")

        assert _cli_handlers() == []

    def test_filter_leaves_clean_records_untouched(self) -> None:
        secrets = SecretFilter()
        secrets.add("abc")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "value %s", ("123",), None)

        assert secrets.filter(record) is True
        assert record.msg == "value %s"
        assert record.args == ("123",)
