"""cortex init — create the project database and seed preset templates.

Creates:
  .cortex.db               — database with the current schema
  ~/.cortex/config.yaml    — global defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from cortex.chat.presets import seed_presets
from cortex.cli.common import console, db_path_for, get_config, open_db
from cortex.config import ensure_global_config
from cortex.db.repository import Repository
from cortex.db.schema import CURRENT_VERSION


def init_cmd(
    ctx: typer.Context,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: database.path from config)."),
    ] = None,
) -> None:
    """Initialize a Cortex project database."""
    cfg = get_config(ctx)
    db_path = db_path_for(db, cfg)
    existed = db_path.exists()

    conn = open_db(db_path, create=True)
    try:
        added = seed_presets(Repository(conn))
    finally:
        conn.close()

    global_path = ensure_global_config()

    verb = "Updated" if existed else "Created"
    console.print(f"[green]✓[/] {verb} {db_path} (schema v{CURRENT_VERSION})")
    console.print(f"  [dim]{added} preset template(s) added[/]")
    console.print(f"  [dim]Global config: {global_path}[/]")
    console.print("\nNext:  cortex ingest <file>")
