"""Structured logging."""

from copytrade_core.logging.setup import bind_session_context, get_logger, setup_logging

__all__ = ["bind_session_context", "get_logger", "setup_logging"]
