"""Cortex rich error messages.

Every error shown to the user states what went wrong and, where one
exists, the exact command that fixes it.

Usage:
    from cortex.cli.errors import err_no_db
    console.print(err_no_db(".cortex.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


def err_no_db(db_path: str = ".cortex.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  cortex init"
    )


def err_config(message: str) -> str:
    """Configuration file or stored provider settings are unusable."""
    return (
        f"[red]Configuration error:[/] {escape(message)}\n"
        "  Check the provider settings with:  cortex llm show"
    )


def err_config_field(field_name: str, message: str) -> str:
    """A provider settings save was rejected."""
    return f"[red]Invalid {escape(field_name)}:[/] {escape(message)}"


def err_llm(user_message: str) -> str:
    """An LLM call failed after retries, or its reply was unreadable."""
    return f"[red]LLM error:[/] {escape(user_message)}"


def err_not_found(message: str) -> str:
    return f"[yellow]Not found:[/] {escape(message)}"


def err_invalid_input(message: str) -> str:
    return f"[red]Error:[/] {escape(message)}"


def err_unreadable_file(path: str, reason: str) -> str:
    """Input file cannot be read as UTF-8 text."""
    return (
        f"[red]Error:[/] Cannot read '{escape(path)}' as UTF-8 text: {escape(reason)}\n"
        "  Only plain-text sources (.txt, .md, ...) can be ingested."
    )


def warn_no_topics(topic_id: int) -> str:
    """Topic exists but has no linked chunks."""
    return (
        f"[yellow]⚠[/] Topic {topic_id} has no linked chunks.\n"
        "  Run:  cortex extract <document-id>  to link chunks to topics."
    )
