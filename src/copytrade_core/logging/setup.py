"""structlog wiring for the copy-trade engine.

Engine modules log through ``structlog.get_logger(<component>)``; records go
through the stdlib root logger so SQLAlchemy and Alembic output share the
same handler and format.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from decimal import Decimal

import structlog

# Libraries whose INFO output drowns out engine events
DEFAULT_QUIET_LOGGERS = ("sqlalchemy.engine", "alembic", "asyncio")


def decimals_to_str(_logger, _method_name, event_dict):
    """Render Decimal values as plain strings so amounts stay exact in JSON."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    quiet_loggers: Iterable[str] = DEFAULT_QUIET_LOGGERS,
) -> None:
    """Route structlog and stdlib logging to stderr.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: "json" for production, "console" for development.
        quiet_loggers: stdlib logger names held at WARNING unless *level*
            is stricter.
    """
    root_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            decimals_to_str,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format),
        ],
        # Records from plain stdlib loggers (SQLAlchemy, Alembic)
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))


def get_logger(name: str | None = None, **initial_context) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_session_context(session_id: str, owner: str | None = None) -> None:
    """Bind the session being processed into contextvars for the current task.

    Each session worker runs in its own asyncio task, so the binding does not
    leak into other sessions' log lines.
    """
    context = {"session_id": session_id}
    if owner is not None:
        context["owner"] = owner
    structlog.contextvars.bind_contextvars(**context)
