"""cortex chat CLI commands — topic conversations.

Commands:
  cortex chat start <topic-id> --template <id>   — summarize/explore a topic's chunks
  cortex chat continue <id> <message>            — one more turn
  cortex chat list <topic-id>                    — conversations of a topic
  cortex chat show <id>                          — full transcript
  cortex chat rename <id> <title>
  cortex chat delete <id>
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cortex.chat.store import ConversationStore
from cortex.cli.common import (
    build_gateway,
    console,
    db_path_for,
    get_config,
    handle_errors,
    open_db,
)
from cortex.cli.errors import warn_no_topics
from cortex.db.models import ConversationRecord, Message, Role
from cortex.db.repository import Repository

chat_app = typer.Typer(
    name="chat",
    help="Multi-turn conversations over a topic's chunks.",
    add_completion=False,
)

_ROLE_STYLE = {Role.SYSTEM: "dim", Role.USER: "cyan", Role.ASSISTANT: "green"}


@chat_app.command("start")
def chat_start_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic whose chunks seed the conversation.")],
    template_id: Annotated[int, typer.Option("--template", "-t", help="Prompt template ID.")],
    task: Annotated[
        str, typer.Option("--task", help="Task type: summarize or explore.")
    ] = "summarize",
    title: Annotated[
        str | None, typer.Option("--title", help="Conversation title (default: template name).")
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Start a conversation over every chunk linked to a topic."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        if repo.get_topic(topic_id) is not None and not repo.get_topic_chunks(topic_id):
            console.print(warn_no_topics(topic_id))
            raise typer.Exit(1)
        store = ConversationStore(repo, build_gateway(repo, cfg))
        with handle_errors(), console.status("Waiting for the model…"):
            record = store.start_topic_conversation(
                topic_id, template_id, title=title, task_type=task
            )
    finally:
        conn.close()

    console.print(f"[green]✓[/] Conversation {record.id}: {escape(record.title)}\n")
    _print_message(record.messages[-1])
    console.print(f"\n[dim]Continue with:  cortex chat continue {record.id} \"...\"[/]")


@chat_app.command("continue")
def chat_continue_cmd(
    ctx: typer.Context,
    conversation_id: Annotated[int, typer.Argument(help="Conversation ID.")],
    message: Annotated[str, typer.Argument(help="Your next message.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Send one more message in an existing conversation."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        store = ConversationStore(repo, build_gateway(repo, cfg))
        with handle_errors(), console.status("Waiting for the model…"):
            record = store.continue_conversation(conversation_id, message)
    finally:
        conn.close()
    _print_message(record.messages[-1])


@chat_app.command("list")
def chat_list_cmd(
    ctx: typer.Context,
    topic_id: Annotated[int, typer.Argument(help="Topic ID.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """List a topic's conversations, most recently updated first."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        summaries = ConversationStore(repo).list_conversations(topic_id)
    finally:
        conn.close()

    if not summaries:
        console.print(f"[yellow]No conversations for topic {topic_id}.[/]")
        return

    table = Table(title=f"Conversations — topic {topic_id}", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Messages", justify="right")
    table.add_column("Updated")
    for s in summaries:
        table.add_row(str(s.id), escape(s.title), str(s.message_count), s.updated_at or "")
    console.print(table)


@chat_app.command("show")
def chat_show_cmd(
    ctx: typer.Context,
    conversation_id: Annotated[int, typer.Argument(help="Conversation ID.")],
    system: Annotated[
        bool, typer.Option("--system", help="Include the system prompt.")
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Print a conversation transcript."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        with handle_errors():
            record = ConversationStore(repo).get_conversation(
                conversation_id
            )
    finally:
        conn.close()
    _print_transcript(record, include_system=system)


@chat_app.command("rename")
def chat_rename_cmd(
    ctx: typer.Context,
    conversation_id: Annotated[int, typer.Argument(help="Conversation ID.")],
    title: Annotated[str, typer.Argument(help="New title.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Rename a conversation."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        with handle_errors():
            record = ConversationStore(repo).rename_conversation(
                conversation_id, title
            )
    finally:
        conn.close()
    console.print(f"[green]✓[/] Conversation {record.id} renamed to {escape(record.title)}")


@chat_app.command("delete")
def chat_delete_cmd(
    ctx: typer.Context,
    conversation_id: Annotated[int, typer.Argument(help="Conversation ID.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Delete a conversation."""
    if not yes and not typer.confirm(f"Delete conversation {conversation_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        with handle_errors():
            ConversationStore(repo).delete_conversation(conversation_id)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Deleted conversation {conversation_id}")


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def _print_message(message: Message) -> None:
    style = _ROLE_STYLE[message.role]
    if message.role is Role.ASSISTANT:
        console.print(Panel(Markdown(message.content), title=message.role.value, border_style=style))
    else:
        console.print(Panel(escape(message.content), title=message.role.value, border_style=style))


def _print_transcript(record: ConversationRecord, *, include_system: bool) -> None:
    console.print(
        f"[bold]{escape(record.title)}[/]  [dim]topic {record.topic_id} · "
        f"{record.task_type} · {record.message_count} messages[/]\n"
    )
    for message in record.messages:
        if message.role is Role.SYSTEM and not include_system:
            continue
        _print_message(message)
