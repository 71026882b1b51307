"""Config loader — reads YAML, applies PAPER_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from paper_agents.config.schema import AppConfig


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        PAPER_DATABASE_URL    -> database.url
        PAPER_LOG_LEVEL       -> logging.level
        PAPER_LOG_FORMAT      -> logging.format
        PAPER_ORACLE_API_KEY  -> oracle.api_key
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    db_url = os.environ.get("PAPER_DATABASE_URL")
    if db_url:
        data.setdefault("database", {})["url"] = db_url

    log_level = os.environ.get("PAPER_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level

    log_format = os.environ.get("PAPER_LOG_FORMAT")
    if log_format:
        data.setdefault("logging", {})["format"] = log_format

    api_key = os.environ.get("PAPER_ORACLE_API_KEY")
    if api_key:
        data.setdefault("oracle", {})["api_key"] = api_key

    return AppConfig.model_validate(data)
