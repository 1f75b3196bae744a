"""Tests for cortex config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from cortex.config import ConfigError, CortexConfig, ensure_global_config, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for var in ("CORTEX_BUILTIN_MODEL", "CORTEX_LOG_LEVEL", "CORTEX_DB"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Defaults with no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    missing_global = tmp_path / "nonexistent" / "config.yaml"
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert isinstance(cfg, CortexConfig)
    assert cfg.chunking.min_size == 500
    assert cfg.chunking.max_size == 800
    assert cfg.llm.max_retries == 2
    assert cfg.llm.retry_delay == 1.0
    assert cfg.llm.builtin_model == "gemini/gemini-2.5-flash"
    assert cfg.database.path == ".cortex.db"
    assert cfg.logging.level == "WARNING"


def test_load_config_global_null_yaml(tmp_path: Path) -> None:
    """Global config with only comments/null → defaults."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.chunking.max_size == 800


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_project_overrides_global(tmp_path: Path) -> None:
    """Per-project cortex.yaml overrides global config."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"llm": {"builtin_model": "openai/gpt-4o-mini"}})
    _write_yaml(tmp_path / "cortex.yaml", {"llm": {"builtin_model": "openai/gpt-4o"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.llm.builtin_model == "openai/gpt-4o"


def test_load_config_project_partial_override(tmp_path: Path) -> None:
    """Per-project can override a single field; global values for other fields survive."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"chunking": {"min_size": 300, "max_size": 600}})
    _write_yaml(tmp_path / "cortex.yaml", {"chunking": {"max_size": 700}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.chunking.max_size == 700
    assert cfg.chunking.min_size == 300  # global value preserved


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "cortex.yaml", {"database": {"path": "from-file.db"}})
    monkeypatch.setenv("CORTEX_DB", "from-env.db")
    monkeypatch.setenv("CORTEX_LOG_LEVEL", "debug")
    monkeypatch.setenv("CORTEX_BUILTIN_MODEL", "ollama/llama3")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.database.path == "from-env.db"
    assert cfg.logging.level == "DEBUG"
    assert cfg.llm.builtin_model == "ollama/llama3"


# ---------------------------------------------------------------------------
# API key guard
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["api_key", "openai_api_key", "secret", "auth_token", "password"])
def test_global_config_rejects_api_keys(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"llm": {key: "sk-live"}})
    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_project_config_rejects_api_keys(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "cortex.yaml", {"api_key": "sk-live"})
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_max_tokens_is_not_an_api_key(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "cortex.yaml", {"llm": {"max_tokens": 1000, "max_retries": 4}})
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.llm.max_tokens == 1000
    assert cfg.llm.max_retries == 4


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "data",
    [
        {"chunking": {"min_size": 0}},
        {"chunking": {"min_size": 900, "max_size": 800}},
        {"llm": {"max_retries": -1}},
        {"llm": {"retry_delay": -0.5}},
        {"logging": {"level": "LOUD"}},
        {"llm": {"max_retries": "many"}},
    ],
)
def test_invalid_values_raise(tmp_path: Path, data: dict) -> None:
    _write_yaml(tmp_path / "cortex.yaml", data)
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "cortex.yaml", {"embeddings": {"model": "x"}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert any("embeddings" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file_with_0600(tmp_path: Path) -> None:
    target = tmp_path / ".cortex" / "config.yaml"
    path = ensure_global_config(target)
    assert path == target
    assert target.exists()
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    # Written defaults load cleanly
    load_config(project_dir=tmp_path, global_config_path=target)


def test_ensure_global_config_does_not_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("chunking:\n  max_size: 1000\n", encoding="utf-8")
    ensure_global_config(target)
    assert "1000" in target.read_text(encoding="utf-8")
