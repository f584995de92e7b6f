"""
proofpipe configuration

Loads config from:
  1. Defaults
  2. Global config (CLI --config or ~/.proofpipe/config.json)
  3. Workspace override (<workspace>/.proofpipe/config.json)
  4. Environment variables (PROOFPIPE_*)

CLI flags are applied on top by the caller with ``PipelineConfig.replace``.
"""
from __future__ import annotations

import copy
import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "engine": "fibonacci",
    "isolation": "process",
    "start_method": "spawn",
    "stage_timeout": None,
    "init_timeout": None,
    "poll_interval": 0.05,
    "sample_url": None,
    "log_level": "INFO",
}

ENV_VARS: dict[str, str] = {
    "PROOFPIPE_ENGINE": "engine",
    "PROOFPIPE_ISOLATION": "isolation",
    "PROOFPIPE_START_METHOD": "start_method",
    "PROOFPIPE_STAGE_TIMEOUT": "stage_timeout",
    "PROOFPIPE_INIT_TIMEOUT": "init_timeout",
    "PROOFPIPE_SAMPLE_URL": "sample_url",
    "PROOFPIPE_LOG_LEVEL": "log_level",
}

_FLOAT_KEYS = {"stage_timeout", "init_timeout", "poll_interval"}


class ConfigError(ValueError):
    """Configuration value is invalid."""


@dataclass(frozen=True)
class PipelineConfig:
    engine: str = "fibonacci"
    isolation: str = "process"
    start_method: str = "spawn"
    stage_timeout: Optional[float] = None
    init_timeout: Optional[float] = None
    poll_interval: float = 0.05
    sample_url: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.isolation not in ("process", "thread"):
            raise ConfigError(f"isolation must be 'process' or 'thread', got {self.isolation!r}")
        for key in ("stage_timeout", "init_timeout"):
            value = getattr(self, key)
            if value is not None and value <= 0:
                raise ConfigError(f"{key} must be positive")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            values[key] = _coerce(key, value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def replace(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with the non-``None`` overrides applied."""
        changes = {key: _coerce(key, value) for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **changes)


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _FLOAT_KEYS:
        if isinstance(value, str) and value.strip().lower() in ("", "none", "null"):
            return None
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key} must be a number, got {value!r}") from exc
    return str(value)


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: top level must be an object", path)
        return {}
    return data


def load_config(config_path: Optional[Path] = None, workspace: Optional[Path] = None) -> PipelineConfig:
    """Load pipeline config from all layers."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Tests must not pick up a developer's ~/.proofpipe/config.json.
    is_pytest = bool(os.environ.get("PYTEST_CURRENT_TEST"))

    home = Path(os.environ["PROOFPIPE_HOME"]) if os.environ.get("PROOFPIPE_HOME") else Path.home() / ".proofpipe"
    global_path: Optional[Path] = Path(config_path) if config_path else home / "config.json"
    if is_pytest and config_path is None:
        global_path = None
    if global_path is not None and global_path.exists():
        config.update(_read_json(global_path))
        logger.debug("loaded config %s", global_path)

    if workspace:
        ws_path = Path(workspace) / ".proofpipe" / "config.json"
        if ws_path.exists():
            config.update(_read_json(ws_path))
            logger.debug("loaded workspace config %s", ws_path)

    for env_name, key in ENV_VARS.items():
        value = os.environ.get(env_name)
        if value is not None and value != "":
            config[key] = value

    return PipelineConfig.from_dict(config)


__all__ = ["ConfigError", "DEFAULT_CONFIG", "ENV_VARS", "PipelineConfig", "load_config"]
