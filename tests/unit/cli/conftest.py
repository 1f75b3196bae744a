"""CLI test isolation: every test runs in its own project directory."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("cortex.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    for var in ("CORTEX_BUILTIN_MODEL", "CORTEX_LOG_LEVEL", "CORTEX_DB", "GEMINI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    # No waiting between retries in CLI tests.
    (tmp_path / "cortex.yaml").write_text("llm:\n  retry_delay: 0\n", encoding="utf-8")
    return tmp_path
