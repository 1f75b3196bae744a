"""Cortex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from cortex.cli.chat import chat_app
from cortex.cli.common import handle_errors
from cortex.cli.ingest import chunk_cmd, documents_cmd, extract_cmd, ingest_cmd
from cortex.cli.init import init_cmd
from cortex.cli.llm import llm_app
from cortex.cli.templates import templates_app
from cortex.cli.topics import topics_app
from cortex.config import load_config
from cortex.logging_setup import setup_logging


def _version() -> str:
    try:
        return importlib.metadata.version("cortex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cortex {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="cortex",
    help=(
        "Cortex — chunk documents, extract topics, and hold LLM conversations over them.\n\n"
        "  cortex ingest FILE   Split a text file into chunks.\n"
        "  cortex extract ID    Label a document's chunks with topics.\n"
        "  cortex chat start    Summarize or explore a topic with an LLM."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override logging.level (DEBUG, INFO, WARNING, ...)."),
    ] = None,
) -> None:
    """Cortex — LLM conversations over chunked documents."""
    with handle_errors():
        cfg = load_config()
    if log_level:
        cfg.logging.level = log_level.upper()
    setup_logging(cfg.logging.level)
    ctx.obj = cfg


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("chunk")(chunk_cmd)
app.command("documents")(documents_cmd)
app.command("extract")(extract_cmd)
app.add_typer(topics_app, name="topics")
app.add_typer(llm_app, name="llm")
app.add_typer(templates_app, name="templates")
app.add_typer(chat_app, name="chat")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Cortex version."""
    typer.echo(f"cortex {_version()}")


if __name__ == "__main__":
    app()
