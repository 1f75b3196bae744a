"""cortex topics CLI commands.

Commands:
  cortex topics list          — all topics with weight and chunk count
  cortex topics show <id>     — the chunks linked to a topic
  cortex topics delete <id>   — delete a topic (links, summary and conversations cascade)
  cortex topics summarize <id>  — generate the topic summary with the LLM
  cortex topics summary <id>    — show (or --from-file replace) the stored summary
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cortex.cli.common import (
    build_gateway,
    console,
    db_path_for,
    get_config,
    handle_errors,
    open_db,
)
from cortex.cli.errors import err_invalid_input, err_not_found, warn_no_topics
from cortex.db.repository import Repository
from cortex.topics.summarizer import TopicSummarizer

topics_app = typer.Typer(
    name="topics",
    help="Browse extracted topics (list, show, delete, summarize, summary).",
    add_completion=False,
)


@topics_app.command("list")
def topics_list_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """List all topics, heaviest first."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        topics = Repository(conn).list_topics()
    finally:
        conn.close()

    if not topics:
        console.print("[yellow]No topics yet.[/]  Run:  cortex extract <document-id>")
        return

    table = Table(title="Topics", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Label", style="bold")
    table.add_column("Weight", justify="right")
    table.add_column("Chunks", justify="right")
    for topic in topics:
        table.add_row(str(topic.id), escape(topic.label), str(topic.weight), str(topic.chunk_count))
    console.print(table)


@topics_app.command("show")
def topics_show_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic ID.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Show the chunks linked to a topic."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        topic = repo.get_topic(topic_id)
        chunks = repo.get_topic_chunks(topic_id) if topic else []
    finally:
        conn.close()

    if topic is None:
        console.print(err_not_found(f"Topic {topic_id} not found"))
        raise typer.Exit(1)

    console.print(f"[bold]{escape(topic.label)}[/]  [dim](weight {topic.weight})[/]")
    if not chunks:
        console.print(warn_no_topics(topic_id))
        return
    for chunk in chunks:
        console.print(
            Panel(
                escape(chunk.content),
                title=f"document {chunk.document_id} · chunk {chunk.position}",
                title_align="left",
            )
        )


@topics_app.command("delete")
def topics_delete_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic ID.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Delete a topic together with its chunk links and conversations."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        topic = repo.get_topic(topic_id)
        if topic is None:
            console.print(err_not_found(f"Topic {topic_id} not found"))
            raise typer.Exit(1)

        conversations = len(repo.list_conversations(topic_id))
        console.print(
            f"\nDelete topic: [bold]{escape(topic.label)}[/]\n"
            f"  Linked chunks: {topic.chunk_count}  |  Conversations: {conversations}"
        )
        if not yes and not typer.confirm("Confirm deletion?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        repo.delete_topic(topic_id)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Deleted topic {topic_id}")


@topics_app.command("summarize")
def topics_summarize_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic ID.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Generate (or regenerate) a topic's summary from its linked chunks."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        summarizer = TopicSummarizer(build_gateway(repo, cfg), repo)
        with handle_errors(), console.status("Waiting for the model…"):
            summary = summarizer.generate_summary(topic_id)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Summary saved for topic {topic_id}\n")
    console.print(Panel(Markdown(summary.summary_text), title="summary", title_align="left"))


@topics_app.command("summary")
def topics_summary_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic ID.")],
    from_file: Annotated[
        Path | None,
        typer.Option("--from-file", "-f", help="Replace the summary with this file's text."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Show a topic's stored summary, or replace it with --from-file."""
    text: str | None = None
    if from_file is not None:
        try:
            text = from_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            console.print(err_invalid_input(f"Cannot read '{from_file}': {exc}"))
            raise typer.Exit(1)
        if not text.strip():
            console.print(err_invalid_input(f"'{from_file}' contains no text."))
            raise typer.Exit(1)

    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        with handle_errors():
            if text is not None:
                repo.upsert_summary(topic_id, text)
                console.print(f"[green]✓[/] Summary replaced for topic {topic_id}")
                return
            summary = repo.get_summary(topic_id)
    finally:
        conn.close()

    if summary is None:
        console.print(
            f"[yellow]No summary for topic {topic_id}.[/]  Run:  cortex topics summarize {topic_id}"
        )
        return
    console.print(f"[dim]Generated {summary.generated_at}[/]\n")
    console.print(Panel(Markdown(summary.summary_text), title="summary", title_align="left"))
