"""Database settings from the engine's ``config.json``.

The file lives at the project root unless ``$SALEENGINE_CONFIG`` points
elsewhere. Relative paths inside it resolve against the file's directory.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

DEFAULT_DB_TIMEOUT = 30.0
DEFAULT_DB_NAME = "saleengine.db"
CONFIG_ENV_VAR = "SALEENGINE_CONFIG"

_PROJECT_CONFIG = Path(__file__).resolve().parents[3] / "config.json"


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    if config_path is not None:
        return Path(config_path)
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else _PROJECT_CONFIG


def load_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Return the parsed configuration, or ``{}`` when the file is absent."""

    path = resolve_config_path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            cfg = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(cfg, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return cfg


@dataclass(frozen=True)
class DatabaseConfig:
    db_path: Path
    timeout: float = DEFAULT_DB_TIMEOUT
    enable_wal: bool = True
    foreign_keys: bool = True


def get_database_config(config_path: Path | str | None = None) -> DatabaseConfig:
    """Resolve ``paths.db_path``, ``db_timeout_seconds`` and the ``db`` section."""

    path = resolve_config_path(config_path)
    cfg = load_config(path)
    paths = cfg.get("paths") if isinstance(cfg.get("paths"), dict) else {}
    db_section = cfg.get("db") if isinstance(cfg.get("db"), dict) else {}

    db_path = Path(paths.get("db_path", DEFAULT_DB_NAME)).expanduser()
    if not db_path.is_absolute():
        db_path = (path.parent / db_path).resolve()
    try:
        timeout = float(cfg.get("db_timeout_seconds", DEFAULT_DB_TIMEOUT))
    except (TypeError, ValueError):
        timeout = DEFAULT_DB_TIMEOUT
    return DatabaseConfig(
        db_path=db_path,
        timeout=timeout,
        enable_wal=bool(db_section.get("enable_wal", True)),
        foreign_keys=bool(db_section.get("foreign_keys", True)),
    )
