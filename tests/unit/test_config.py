from __future__ import annotations

from pathlib import Path

import pytest

from ao.config import ConfigError, Settings, copy_config_template, load_config, write_config


def test_defaults_match_template() -> None:
    settings = Settings.from_mapping(copy_config_template(), environ={})

    assert settings.models.default == "gpt-4o-mini"
    assert settings.orchestration.strategy == "linear"
    assert settings.orchestration.max_loops == 3
    assert settings.orchestration.multi_agent is True
    assert settings.task_planner.data_dir == Path(".data/task-planner")
    assert settings.task_planner.tick_seconds == 1.0
    assert settings.task_planner.autosave_every == 30
    assert settings.task_planner.reference_max_chars == 4000
    assert settings.logs_dir is None


def test_environment_overrides_config_values(tmp_path) -> None:
    config = {"orchestration": {"strategy": "linear", "max_loops": 5}}
    environ = {
        "AO_AGENT_STRATEGY": "GRAPH",
        "AO_AGENT_MAX_LOOPS": "0",
        "AO_TASK_PLANNER_DIR": "snapshots",
    }

    settings = Settings.from_mapping(config, base_dir=tmp_path, environ=environ)

    assert settings.orchestration.strategy == "graph"
    assert settings.orchestration.max_loops == 1
    assert settings.task_planner.data_dir == (tmp_path / "snapshots").resolve()


def test_invalid_values_fall_back_to_defaults() -> None:
    config = {
        "orchestration": {"max_loops": "many", "temperature": "hot", "multi_agent": "nope"},
        "task_planner": {"tick_seconds": -1, "autosave_every": 0},
        "paths": "not a mapping",
    }

    settings = Settings.from_mapping(config, environ={})

    assert settings.orchestration.max_loops == 3
    assert settings.orchestration.temperature == 0.2
    assert settings.orchestration.multi_agent is True
    assert settings.task_planner.tick_seconds == 1.0
    assert settings.task_planner.autosave_every == 30


def test_logs_path_is_anchored_to_config_directory(tmp_path) -> None:
    settings = Settings.from_mapping({"paths": {"logs": "data/logs"}}, base_dir=tmp_path, environ={})

    assert settings.logs_dir == (tmp_path / "data" / "logs").resolve()


def test_load_config_round_trip(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    write_config(path, {"models": {"default": "offline"}})

    assert load_config(path) == {"models": {"default": "offline"}}


def test_load_config_rejects_bad_files(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(listing)

    broken = tmp_path / "broken.yaml"
    broken.write_text("models: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(broken)
