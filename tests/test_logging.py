"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
from decimal import Decimal

import structlog

from copytrade_core.logging import bind_session_context, get_logger, setup_logging


class TestSetupLogging:
    def test_json_format(self, capsys):
        setup_logging(level="INFO", log_format="json")
        logger = get_logger("test_json")
        logger.info("order_filled", asset_id="tok-1")

        captured = capsys.readouterr()
        line = json.loads(captured.err.strip())
        assert line["event"] == "order_filled"
        assert line["asset_id"] == "tok-1"
        assert line["level"] == "info"
        assert "timestamp" in line

    def test_console_format(self, capsys):
        setup_logging(level="INFO", log_format="console")
        logger = get_logger("test_console")
        logger.info("hello console", owner="alice")

        captured = capsys.readouterr()
        assert "hello console" in captured.err
        assert "alice" in captured.err

    def test_log_level_filtering(self, capsys):
        setup_logging(level="WARNING", log_format="json")
        logger = get_logger("test_level")
        logger.info("should be hidden")
        logger.warning("should appear")

        captured = capsys.readouterr()
        assert "should be hidden" not in captured.err
        assert "should appear" in captured.err

    def test_get_logger_with_context(self, capsys):
        setup_logging(level="INFO", log_format="json")
        logger = get_logger("test_ctx", session_id="s-1", owner="bob")
        logger.info("context test")

        captured = capsys.readouterr()
        line = json.loads(captured.err.strip())
        assert line["session_id"] == "s-1"
        assert line["owner"] == "bob"

    def test_decimal_amounts_render_exactly(self, capsys):
        setup_logging(level="INFO", log_format="json")
        get_logger("test_decimal").info("order_filled", size_usdc=Decimal("10.10"))

        line = json.loads(capsys.readouterr().err.strip())
        assert line["size_usdc"] == "10.10"

    def test_stdlib_records_share_format(self, capsys):
        setup_logging(level="INFO", log_format="json")
        logging.getLogger("copytrade.plain").warning("from stdlib")

        line = json.loads(capsys.readouterr().err.strip())
        assert line["event"] == "from stdlib"
        assert line["level"] == "warning"
        assert line["logger"] == "copytrade.plain"

    def test_quiet_loggers_held_at_warning(self, capsys):
        setup_logging(level="DEBUG", log_format="json", quiet_loggers=["noisy.lib"])
        logging.getLogger("noisy.lib").info("chatter")
        logging.getLogger("noisy.lib").warning("problem")

        err = capsys.readouterr().err
        assert "chatter" not in err
        assert "problem" in err
        assert logging.getLogger("noisy.lib").level == logging.WARNING

    def test_quiet_loggers_follow_stricter_root(self):
        setup_logging(level="ERROR", log_format="json", quiet_loggers=["noisy.lib"])
        assert logging.getLogger("noisy.lib").level == logging.ERROR


class TestSessionContext:
    def test_bind_session_context(self, capsys):
        setup_logging(level="INFO", log_format="json")
        structlog.contextvars.clear_contextvars()
        bind_session_context("sess-42", owner="carol")

        get_logger("test_session_ctx").info("with session")

        line = json.loads(capsys.readouterr().err.strip())
        assert line["session_id"] == "sess-42"
        assert line["owner"] == "carol"
        structlog.contextvars.clear_contextvars()

    def test_bind_without_owner(self, capsys):
        setup_logging(level="INFO", log_format="json")
        structlog.contextvars.clear_contextvars()
        bind_session_context("sess-7")

        get_logger("test_session_ctx").info("no owner")

        line = json.loads(capsys.readouterr().err.strip())
        assert line["session_id"] == "sess-7"
        assert "owner" not in line
        structlog.contextvars.clear_contextvars()
