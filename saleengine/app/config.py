"""Engine settings read from ``config.json``.

Only the engine's own sections are interpreted here; database paths and
timeouts are resolved by :mod:`saleengine.infrastructure.db.config`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from saleengine.infrastructure.db import get_database_config, load_config

DEFAULT_SETTLEMENT_INTERVAL = 60.0
DEFAULT_NOTIFIER_WORKERS = 4


@dataclass(frozen=True)
class EngineSettings:
    db_path: Path
    settlement_interval_seconds: float = DEFAULT_SETTLEMENT_INTERVAL
    settlement_batch_size: int | None = None
    single_called_entry: bool = True
    notifier: Dict[str, Any] = field(default_factory=dict)
    notifier_workers: int = DEFAULT_NOTIFIER_WORKERS
    tracing: Dict[str, Any] = field(default_factory=dict)


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = cfg.get(name, {})
    return value if isinstance(value, dict) else {}


def load_settings(config_path: Path | str | None = None) -> EngineSettings:
    """Build :class:`EngineSettings` from the JSON configuration file.

    Args:
        config_path: Optional explicit path; defaults to the project
            ``config.json`` (or ``$SALEENGINE_CONFIG``).

    Returns:
        Settings with defaults applied for any missing keys.
    """
    cfg = load_config(config_path)
    settlement = _section(cfg, "settlement")
    line = _section(cfg, "line")
    notifier = _section(cfg, "notifier")
    batch_size = settlement.get("batch_size")
    return EngineSettings(
        db_path=get_database_config(config_path).db_path,
        settlement_interval_seconds=float(
            settlement.get("interval_seconds", DEFAULT_SETTLEMENT_INTERVAL)
        ),
        settlement_batch_size=int(batch_size) if batch_size else None,
        single_called_entry=bool(line.get("single_called_entry", True)),
        notifier=dict(notifier),
        notifier_workers=int(notifier.get("max_workers", DEFAULT_NOTIFIER_WORKERS)),
        tracing=_section(cfg, "tracing"),
    )


__all__ = ["EngineSettings", "load_settings"]
