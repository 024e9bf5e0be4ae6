"""Database layer — engine, session, ORM base."""

from copytrade_core.db.base import Base
from copytrade_core.db.engine import (
    dispose_engine,
    get_engine,
    get_session,
    init_engine,
    normalize_url,
)

__all__ = ["Base", "dispose_engine", "get_engine", "get_session", "init_engine", "normalize_url"]
