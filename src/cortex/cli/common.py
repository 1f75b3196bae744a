"""Helpers shared by the cortex CLI commands."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from cortex.cli.errors import (
    err_config,
    err_config_field,
    err_invalid_input,
    err_llm,
    err_no_db,
    err_not_found,
)
from cortex.config import ConfigError, CortexConfig, load_config
from cortex.db.connection import Database
from cortex.db.repository import NotFoundError, Repository
from cortex.db.schema import initialize
from cortex.llm.errors import LLMError
from cortex.llm.gateway import LLMGateway
from cortex.llm.resolver import ConfigFieldError, ProviderConfigResolver

console = Console()


def get_config(ctx: typer.Context) -> CortexConfig:
    """Return the config loaded by the root callback (or load it now)."""
    if isinstance(ctx.obj, CortexConfig):
        return ctx.obj
    with handle_errors():
        cfg = load_config()
    ctx.obj = cfg
    return cfg


def db_path_for(db: Path | None, cfg: CortexConfig) -> Path:
    return db if db is not None else Path(cfg.database.path)


def open_db(db_path: Path, *, create: bool = False) -> sqlite3.Connection:
    """Open the project database and run migrations.

    With *create*, missing parent directories are created. Exits with code 1
    when the file is missing and *create* is False.
    """
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    if create:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def build_resolver(repo: Repository, cfg: CortexConfig) -> ProviderConfigResolver:
    return ProviderConfigResolver(
        repo,
        builtin_model=cfg.llm.builtin_model,
        builtin_base_url=cfg.llm.builtin_base_url,
    )


def build_gateway(repo: Repository, cfg: CortexConfig) -> LLMGateway:
    return LLMGateway.from_config(build_resolver(repo, cfg), cfg.llm)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print domain errors as rich messages and exit with code 1."""
    try:
        yield
    except ConfigFieldError as exc:
        console.print(err_config_field(exc.field, exc.reason))
        raise typer.Exit(1)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    except LLMError as exc:
        console.print(err_llm(exc.user_message()))
        raise typer.Exit(1)
    except NotFoundError as exc:
        console.print(err_not_found(str(exc)))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1)
