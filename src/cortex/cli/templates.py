"""cortex templates CLI commands.

Commands:
  cortex templates list          — preset and custom prompt templates
  cortex templates show <id>     — a template's system prompt
  cortex templates add ...       — add a custom template
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cortex.cli.common import console, db_path_for, get_config, open_db
from cortex.cli.errors import err_invalid_input, err_not_found
from cortex.db.repository import Repository

templates_app = typer.Typer(
    name="templates",
    help="Manage prompt templates (list, show, add).",
    add_completion=False,
)


@templates_app.command("list")
def templates_list_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """List prompt templates, presets first."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        templates = Repository(conn).list_prompt_templates()
    finally:
        conn.close()

    if not templates:
        console.print("[yellow]No templates.[/]  Run:  cortex init  to add the presets.")
        return

    table = Table(title="Prompt Templates", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Description")
    for tpl in templates:
        kind = "[cyan]preset[/]" if tpl.is_preset else "custom"
        table.add_row(str(tpl.id), escape(tpl.name), kind, escape(tpl.description))
    console.print(table)


@templates_app.command("show")
def templates_show_cmd(
    ctx: typer.Context,
    template_id: Annotated[int, typer.Argument(help="Template ID.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Show a template's system prompt."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        tpl = Repository(conn).get_prompt_template(template_id)
    finally:
        conn.close()
    if tpl is None:
        console.print(err_not_found(f"Prompt template {template_id} not found"))
        raise typer.Exit(1)
    console.print(Panel(escape(tpl.system_prompt), title=escape(tpl.name), title_align="left"))


@templates_app.command("add")
def templates_add_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", "-n", help="Template name (unique).")],
    system_prompt: Annotated[
        str | None, typer.Option("--system-prompt", help="System prompt text.")
    ] = None,
    prompt_file: Annotated[
        Path | None, typer.Option("--file", "-f", help="Read the system prompt from a file.")
    ] = None,
    description: Annotated[str, typer.Option("--description", "-d", help="Short description.")] = "",
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Add a custom prompt template."""
    if (system_prompt is None) == (prompt_file is None):
        console.print(err_invalid_input("Give exactly one of --system-prompt or --file."))
        raise typer.Exit(1)
    if prompt_file is not None:
        try:
            system_prompt = prompt_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            console.print(err_invalid_input(f"Cannot read '{prompt_file}': {exc}"))
            raise typer.Exit(1)
    if not name.strip() or not system_prompt or not system_prompt.strip():
        console.print(err_invalid_input("Template name and system prompt must not be blank."))
        raise typer.Exit(1)

    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        if repo.get_prompt_template_by_name(name.strip()) is not None:
            console.print(err_invalid_input(f"A template named '{name.strip()}' already exists."))
            raise typer.Exit(1)
        template_id = repo.add_prompt_template(
            name=name.strip(), system_prompt=system_prompt, description=description.strip()
        )
    finally:
        conn.close()
    console.print(f"[green]✓[/] Added template {template_id}: {escape(name.strip())}")
