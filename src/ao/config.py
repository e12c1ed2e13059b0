"""Runtime configuration loaded from ``config.yaml`` with environment overrides."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_CONFIG_NAME = "config.yaml"
DEFAULT_BASE_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "models": {
        "default": "gpt-4o-mini",
        "base_url": DEFAULT_BASE_URL,
        "timeout": 120,
    },
    "orchestration": {
        "multi_agent": True,
        "strategy": "linear",
        "max_loops": 3,
        "temperature": 0.2,
        "max_tokens": 4000,
    },
    "task_planner": {
        "data_dir": ".data/task-planner",
        "tick_seconds": 1.0,
        "autosave_every": 30,
        "remote_prefix": "task-planner",
        "reference_timeout": 8,
        "reference_max_chars": 4000,
        "temperature": 0.2,
        "max_tokens": 2500,
    },
    "paths": {
        "logs": "",
    },
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""


@dataclass(slots=True)
class ModelSettings:
    """Generation backend settings."""

    default: str = "gpt-4o-mini"
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0
    api_key: Optional[str] = None


@dataclass(slots=True)
class OrchestrationSettings:
    """Multi-agent pipeline settings."""

    multi_agent: bool = True
    strategy: str = "linear"
    max_loops: int = 3
    temperature: float = 0.2
    max_tokens: int = 4000


@dataclass(slots=True)
class TaskPlannerSettings:
    """Task planner cadence, persistence and plan generation settings."""

    data_dir: Path = Path(".data/task-planner")
    tick_seconds: float = 1.0
    autosave_every: int = 30
    remote_prefix: str = "task-planner"
    reference_timeout: float = 8.0
    reference_max_chars: int = 4000
    temperature: float = 0.2
    max_tokens: int = 2500


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    models: ModelSettings = field(default_factory=ModelSettings)
    orchestration: OrchestrationSettings = field(default_factory=OrchestrationSettings)
    task_planner: TaskPlannerSettings = field(default_factory=TaskPlannerSettings)
    logs_dir: Optional[Path] = None

    @classmethod
    def from_mapping(
        cls,
        config: Mapping[str, Any] | None,
        *,
        base_dir: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        """Build settings from a config mapping, then apply environment overrides."""
        config = config or {}
        env = os.environ if environ is None else environ
        models_cfg = _section(config, "models")
        orchestration_cfg = _section(config, "orchestration")
        planner_cfg = _section(config, "task_planner")
        paths_cfg = _section(config, "paths")

        models = ModelSettings(
            default=_as_str(models_cfg.get("default"), "gpt-4o-mini"),
            base_url=_as_str(models_cfg.get("base_url"), DEFAULT_BASE_URL),
            timeout=_as_float(models_cfg.get("timeout"), 120.0, minimum=0.001),
            api_key=_as_str(models_cfg.get("api_key"), "") or None,
        )

        orchestration = OrchestrationSettings(
            multi_agent=_as_bool(orchestration_cfg.get("multi_agent"), True),
            strategy=_as_str(
                env.get("AO_AGENT_STRATEGY") or orchestration_cfg.get("strategy"),
                "linear",
            ).lower(),
            max_loops=max(
                1,
                _as_int(
                    env.get("AO_AGENT_MAX_LOOPS") or orchestration_cfg.get("max_loops"),
                    3,
                ),
            ),
            temperature=_as_float(orchestration_cfg.get("temperature"), 0.2),
            max_tokens=_as_int(orchestration_cfg.get("max_tokens"), 4000, minimum=1),
        )

        data_dir_value = env.get("AO_TASK_PLANNER_DIR") or planner_cfg.get("data_dir")
        data_dir = Path(_as_str(data_dir_value, ".data/task-planner"))
        task_planner = TaskPlannerSettings(
            data_dir=_anchor(data_dir, base_dir),
            tick_seconds=_as_float(planner_cfg.get("tick_seconds"), 1.0, minimum=0.001),
            autosave_every=_as_int(planner_cfg.get("autosave_every"), 30, minimum=1),
            remote_prefix=_as_str(planner_cfg.get("remote_prefix"), "task-planner").strip("/") or "task-planner",
            reference_timeout=_as_float(planner_cfg.get("reference_timeout"), 8.0, minimum=0.001),
            reference_max_chars=_as_int(planner_cfg.get("reference_max_chars"), 4000, minimum=0),
            temperature=_as_float(planner_cfg.get("temperature"), 0.2),
            max_tokens=_as_int(planner_cfg.get("max_tokens"), 2500, minimum=1),
        )

        logs_value = paths_cfg.get("logs")
        logs_dir = None
        if isinstance(logs_value, str) and logs_value.strip():
            logs_dir = _anchor(Path(logs_value.strip()), base_dir)

        return cls(
            models=models,
            orchestration=orchestration,
            task_planner=task_planner,
            logs_dir=logs_dir,
        )


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return data


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _anchor(path: Path, base_dir: Path | None) -> Path:
    if path.is_absolute() or base_dir is None:
        return path
    return (base_dir / path).resolve()


def _as_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _as_int(value: Any, default: int, *, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _as_float(value: Any, default: float, *, minimum: float | None = None) -> float:
    if isinstance(value, bool):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return default


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ModelSettings",
    "OrchestrationSettings",
    "Settings",
    "TaskPlannerSettings",
    "copy_config_template",
    "load_config",
    "write_config",
]
