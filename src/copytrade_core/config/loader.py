"""Config loader — reads YAML, applies COPYTRADE_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from copytrade_core.config.schema import AppConfig

_ENV_OVERRIDES = {
    "COPYTRADE_DATABASE_URL": ("database", "url"),
    "COPYTRADE_LOG_LEVEL": ("logging", "level"),
    "COPYTRADE_LOG_FORMAT": ("logging", "format"),
}


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        COPYTRADE_DATABASE_URL  -> database.url
        COPYTRADE_LOG_LEVEL     -> logging.level
        COPYTRADE_LOG_FORMAT    -> logging.format
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data.setdefault(section, {})[key] = value

    return AppConfig.model_validate(data)
