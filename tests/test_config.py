"""Tests for layered configuration."""
from __future__ import annotations

import json

import pytest

from proofpipe.config import ConfigError, PipelineConfig, load_config


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PROOFPIPE_ENGINE",
        "PROOFPIPE_ISOLATION",
        "PROOFPIPE_START_METHOD",
        "PROOFPIPE_STAGE_TIMEOUT",
        "PROOFPIPE_INIT_TIMEOUT",
        "PROOFPIPE_SAMPLE_URL",
        "PROOFPIPE_LOG_LEVEL",
        "PROOFPIPE_HOME",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = load_config()
    assert config == PipelineConfig()
    assert config.isolation == "process"
    assert config.start_method == "spawn"
    assert config.stage_timeout is None


def test_layers_apply_in_order(tmp_path, monkeypatch):
    global_path = tmp_path / "global.json"
    _write(global_path, {"engine": "pkg.mod:Engine", "stage_timeout": 30, "log_level": "DEBUG"})
    workspace = tmp_path / "ws"
    _write(workspace / ".proofpipe" / "config.json", {"stage_timeout": 5, "isolation": "thread"})
    monkeypatch.setenv("PROOFPIPE_LOG_LEVEL", "WARNING")

    config = load_config(global_path, workspace)

    assert config.engine == "pkg.mod:Engine"
    assert config.stage_timeout == 5.0
    assert config.isolation == "thread"
    assert config.log_level == "WARNING"


def test_home_directory_config(tmp_path, monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    monkeypatch.setenv("PROOFPIPE_HOME", str(tmp_path))
    _write(tmp_path / "config.json", {"init_timeout": "12.5"})
    assert load_config().init_timeout == 12.5


def test_unreadable_file_is_ignored(tmp_path):
    workspace = tmp_path
    (workspace / ".proofpipe").mkdir()
    (workspace / ".proofpipe" / "config.json").write_text("{nope")
    assert load_config(workspace=workspace) == PipelineConfig()


def test_unknown_keys_are_ignored():
    assert PipelineConfig.from_dict({"colour": "blue"}) == PipelineConfig()


@pytest.mark.parametrize(
    "overrides",
    [{"isolation": "container"}, {"stage_timeout": 0}, {"poll_interval": -1}],
)
def test_invalid_values(overrides):
    with pytest.raises(ConfigError):
        PipelineConfig(**overrides)


def test_env_timeout_must_be_numeric(monkeypatch):
    monkeypatch.setenv("PROOFPIPE_STAGE_TIMEOUT", "later")
    with pytest.raises(ConfigError):
        load_config()


def test_replace_skips_unset_overrides():
    config = PipelineConfig(engine="a").replace(engine=None, stage_timeout="3", isolation="thread")
    assert config.engine == "a"
    assert config.stage_timeout == 3.0
    assert config.isolation == "thread"
    assert config.to_dict()["isolation"] == "thread"
