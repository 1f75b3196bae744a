"""Cortex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CORTEX_BUILTIN_MODEL, CORTEX_LOG_LEVEL, CORTEX_DB)
  3. Per-project cortex.yaml
  4. Global ~/.cortex/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys. Provider credentials are stored
encoded in the database (see cortex.llm.secrets) or, for the built-in
provider, read from environment variables.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".cortex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "cortex.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or max_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(["chunking", "llm", "database", "logging"])

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when configuration is invalid, incomplete, or cannot be decoded.

    Covers config file problems as well as a stored provider configuration
    that is active but unusable (undecodable credential, missing fields).
    """


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ChunkingCfg:
    """Paragraph chunker bounds in characters (cortex.yaml: chunking:)."""

    min_size: int = 500
    max_size: int = 800


@dataclass
class LLMCfg:
    """LLM invocation settings (cortex.yaml: llm:).

    Attributes:
        max_retries: Retries after the first failed attempt (2 → 3 attempts).
        retry_delay: Fixed wait between attempts, in seconds.
        timeout: Provider connection timeout, in seconds.
        max_tokens: Maximum output tokens requested from the provider.
        builtin_model: litellm model string used when no provider is configured.
        builtin_base_url: Endpoint override for the built-in provider ("" = its own).
    """

    max_retries: int = 2
    retry_delay: float = 1.0
    timeout: float = 120.0
    max_tokens: int = 32_768
    builtin_model: str = "gemini/gemini-2.5-flash"
    builtin_base_url: str = ""


@dataclass
class DatabaseCfg:
    """SQLite database location (cortex.yaml: database:)."""

    path: str = ".cortex.db"


@dataclass
class LoggingCfg:
    """Log level for the cortex logger (cortex.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class CortexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    llm: LLMCfg = field(default_factory=LLMCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config file '{source}' contains a forbidden key '{full}'.\n"
                        f"  Provider API keys are stored with:  cortex llm set --api-key ...\n"
                        f"  Built-in provider keys come from environment variables.\n"
                        f"  Remove '{full}' from {source.name}."
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CortexConfig) -> None:
    """Raise ConfigError for out-of-range values."""
    if cfg.chunking.min_size < 1:
        raise ConfigError(f"chunking.min_size must be >= 1, got {cfg.chunking.min_size}")
    if cfg.chunking.min_size > cfg.chunking.max_size:
        raise ConfigError(
            f"chunking.min_size ({cfg.chunking.min_size}) must not exceed "
            f"chunking.max_size ({cfg.chunking.max_size})"
        )
    if cfg.llm.max_retries < 0:
        raise ConfigError(f"llm.max_retries must be >= 0, got {cfg.llm.max_retries}")
    if cfg.llm.retry_delay < 0:
        raise ConfigError(f"llm.retry_delay must be >= 0, got {cfg.llm.retry_delay}")
    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, "
            f"got '{cfg.logging.level}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> CortexConfig:
    """Build a *CortexConfig* from a merged raw YAML dict."""
    cfg = CortexConfig()

    try:
        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                min_size=int(c.get("min_size", cfg.chunking.min_size)),
                max_size=int(c.get("max_size", cfg.chunking.max_size)),
            )

        if "llm" in data:
            m = data["llm"] or {}
            cfg.llm = LLMCfg(
                max_retries=int(m.get("max_retries", cfg.llm.max_retries)),
                retry_delay=float(m.get("retry_delay", cfg.llm.retry_delay)),
                timeout=float(m.get("timeout", cfg.llm.timeout)),
                max_tokens=int(m.get("max_tokens", cfg.llm.max_tokens)),
                builtin_model=str(m.get("builtin_model", cfg.llm.builtin_model)),
                builtin_base_url=str(m.get("builtin_base_url") or cfg.llm.builtin_base_url),
            )

        if "database" in data:
            d = data["database"] or {}
            cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

        if "logging" in data:
            lg = data["logging"] or {}
            cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: CortexConfig) -> CortexConfig:
    """Apply CORTEX_* environment variable overrides (layer 2)."""
    if model := os.environ.get("CORTEX_BUILTIN_MODEL"):
        cfg.llm.builtin_model = model
    if level := os.environ.get("CORTEX_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    if db_path := os.environ.get("CORTEX_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CortexConfig:
    """Load and return a merged *CortexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *cortex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *CortexConfig*.

    Raises:
        ConfigError: If a config file contains API-key-like fields, or any
            value is malformed or out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.cortex/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Cortex global configuration: defaults only.\n"
            "# NEVER store API keys here. Configure providers with:\n"
            "#   cortex llm set --provider openai --api-key sk-...\n"
            "\n"
            "chunking:\n"
            "  min_size: 500\n"
            "  max_size: 800\n"
            "\n"
            "llm:\n"
            "  max_retries: 2\n"
            "  retry_delay: 1.0\n"
            "  builtin_model: gemini/gemini-2.5-flash\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
