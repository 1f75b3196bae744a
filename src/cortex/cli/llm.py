"""cortex llm CLI commands — provider settings.

Commands:
  cortex llm show             — current provider settings (never the key)
  cortex llm set ...          — store new provider settings
  cortex llm resolve <task>   — effective provider/model for a task type
  cortex llm test             — send a tiny prompt with the current settings
  cortex llm reset            — revert to the built-in provider
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from cortex.cli.common import (
    build_gateway,
    build_resolver,
    console,
    db_path_for,
    get_config,
    handle_errors,
    open_db,
)
from cortex.cli.errors import err_config_field
from cortex.db.repository import Repository
from cortex.llm.providers import Provider, TaskType
from cortex.llm.resolver import ProviderConfigView

llm_app = typer.Typer(
    name="llm",
    help="Configure the LLM provider (show, set, resolve, test, reset).",
    add_completion=False,
)


@llm_app.command("show")
def llm_show_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Show the active provider settings."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        view = build_resolver(Repository(conn), cfg).get_config()
    finally:
        conn.close()
    _print_view(view)


@llm_app.command("set")
def llm_set_cmd(
    ctx: typer.Context,
    provider: Annotated[
        str,
        typer.Option(
            "--provider",
            "-p",
            help=f"Provider family: {', '.join(p.value for p in Provider)}.",
        ),
    ],
    base_url: Annotated[
        str, typer.Option("--base-url", help="OpenAI-compatible endpoint (http/https).")
    ] = "",
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", help="API key (omit to keep the stored key for the same provider)."),
    ] = None,
    default_model: Annotated[str, typer.Option("--default-model", "-m", help="Default model.")] = "",
    task_model: Annotated[
        list[str] | None,
        typer.Option("--task-model", help="Per-task model override TASK=MODEL (repeatable)."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Store new provider settings and make them active."""
    cfg = get_config(ctx)
    task_models = _parse_task_models(task_model or [])

    conn = open_db(db_path_for(db, cfg))
    try:
        with handle_errors():
            view = build_resolver(Repository(conn), cfg).save_config(
                provider,
                base_url=base_url,
                api_key=api_key,
                default_model=default_model,
                task_models=task_models,
            )
    finally:
        conn.close()
    console.print("[green]✓[/] Provider settings saved")
    _print_view(view)


@llm_app.command("resolve")
def llm_resolve_cmd(
    ctx: typer.Context,
    task: Annotated[
        str,
        typer.Argument(help=f"Task type: {', '.join(t.value for t in TaskType)}."),
    ] = TaskType.SUMMARIZE.value,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Show which provider, endpoint, and model a task type resolves to."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        with handle_errors():
            effective = build_resolver(Repository(conn), cfg).resolve(task)
    finally:
        conn.close()
    console.print(f"  Task:      {escape(task)}")
    console.print(f"  Provider:  {effective.provider.value}")
    console.print(f"  Base URL:  {escape(effective.base_url) or '[dim](provider default)[/]'}")
    console.print(f"  Model:     {escape(effective.model) or '[red](none)[/]'}")
    console.print(f"  API key:   {'set' if effective.api_key else '[yellow]missing[/]'}")


@llm_app.command("test")
def llm_test_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Send a short test prompt using the current settings."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        with handle_errors():
            reply = build_gateway(Repository(conn), cfg).check_connection()
    finally:
        conn.close()
    console.print(f"[green]✓[/] Connection OK — reply: {escape(reply.strip()[:80])}")


@llm_app.command("reset")
def llm_reset_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Deactivate stored settings and use the built-in provider."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        build_resolver(Repository(conn), cfg).reset()
    finally:
        conn.close()
    console.print("[green]✓[/] Reverted to the built-in provider")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _parse_task_models(pairs: list[str]) -> dict[str, str]:
    models: dict[str, str] = {}
    for pair in pairs:
        task, sep, model = pair.partition("=")
        if not sep or not task.strip():
            console.print(err_config_field("task_models", f"expected TASK=MODEL, got '{pair}'"))
            raise typer.Exit(1)
        models[task.strip()] = model.strip()
    return models


def _print_view(view: ProviderConfigView) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    source = "stored" if view.is_configured else "built-in default"
    table.add_row("Provider", f"{view.provider} [dim]({source})[/]")
    table.add_row("Base URL", escape(view.base_url) or "[dim](provider default)[/]")
    table.add_row("Default model", escape(view.default_model) or "[dim](provider default)[/]")
    table.add_row("API key", "[green]set[/]" if view.has_api_key else "[yellow]not set[/]")
    for task, model in sorted(view.task_models.items()):
        table.add_row(f"Model · {task}", escape(model))
    console.print(table)
