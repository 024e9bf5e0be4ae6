"""Configuration system."""

from copytrade_core.config.loader import load_config
from copytrade_core.config.schema import AppConfig, EngineConfig, SessionConfig

__all__ = ["AppConfig", "EngineConfig", "SessionConfig", "load_config"]
