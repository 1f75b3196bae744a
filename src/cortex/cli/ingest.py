"""cortex ingest / chunk / documents — split text files into stored chunks.

Re-ingesting a file with the same name replaces that document's chunks
(and their topic links) in one transaction.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from cortex.cli.common import (
    build_gateway,
    console,
    db_path_for,
    get_config,
    handle_errors,
    open_db,
)
from cortex.cli.errors import err_invalid_input, err_unreadable_file
from cortex.config import CortexConfig
from cortex.db.repository import Repository
from cortex.ingest.paragraph import ParagraphChunker
from cortex.topics.extractor import TopicExtractor

_PREVIEW_CHARS = 60


def ingest_cmd(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="Plain-text file to ingest.")],
    min_size: Annotated[
        int | None, typer.Option("--min-size", help="Minimum chunk size in characters.")
    ] = None,
    max_size: Annotated[
        int | None, typer.Option("--max-size", help="Maximum chunk size in characters.")
    ] = None,
    extract: Annotated[
        bool, typer.Option("--extract", help="Run topic extraction after chunking.")
    ] = False,
    db: Annotated[
        Path | None, typer.Option("--db", help="Path to the database (created if missing).")
    ] = None,
) -> None:
    """Chunk a text file and store its chunks."""
    cfg = get_config(ctx)
    text = _read_text(file)
    chunker = _make_chunker(cfg, min_size, max_size)

    conn = open_db(db_path_for(db, cfg), create=True)
    repo = Repository(conn)
    try:
        with handle_errors():
            segments = chunker.chunk(None, text)

            existing = repo.get_document_by_filename(file.name)
            if existing is not None:
                document_id = existing.id
                repo.set_document_status(document_id, "parsing")
                action = "Re-ingested"
            else:
                document_id = repo.add_document(file.name)
                action = "Ingested"
            stored = repo.replace_chunks(document_id, segments)

        console.print(
            f"[green]✓[/] {action} {file.name} → document {document_id}, {len(stored)} chunk(s)"
        )

        if extract:
            with handle_errors():
                report = TopicExtractor(build_gateway(repo, cfg), repo).extract_document(document_id)
            _print_report(report.processed, report.total, report.errors)
    finally:
        conn.close()


def chunk_cmd(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="Plain-text file to preview.")],
    min_size: Annotated[
        int | None, typer.Option("--min-size", help="Minimum chunk size in characters.")
    ] = None,
    max_size: Annotated[
        int | None, typer.Option("--max-size", help="Maximum chunk size in characters.")
    ] = None,
) -> None:
    """Preview how a file would be chunked, without storing anything."""
    cfg = get_config(ctx)
    text = _read_text(file)
    chunker = _make_chunker(cfg, min_size, max_size)
    with handle_errors():
        segments = chunker.chunk(None, text)

    table = Table(title=f"{file.name} — {len(segments)} chunk(s)", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Chars", justify="right")
    table.add_column("Preview")
    for seg in segments:
        preview = seg.content[:_PREVIEW_CHARS].replace("\n", " ")
        if len(seg.content) > _PREVIEW_CHARS:
            preview += "…"
        table.add_row(str(seg.position), str(len(seg.content)), preview)
    console.print(table)


def documents_cmd(
    ctx: typer.Context,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """List ingested documents."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    try:
        documents = Repository(conn).list_documents()
    finally:
        conn.close()

    if not documents:
        console.print("[yellow]No documents yet.[/]  Run:  cortex ingest <file>")
        return

    table = Table(title="Documents", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Filename", style="bold")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Created")
    for doc in documents:
        table.add_row(str(doc.id), doc.filename, doc.status, str(doc.chunk_count), doc.created_at or "")
    console.print(table)


def extract_cmd(
    ctx: typer.Context,
    document_id: Annotated[int, typer.Argument(help="Document to extract topics for.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to the database.")] = None,
) -> None:
    """Extract topics for every chunk of a document."""
    cfg = get_config(ctx)
    conn = open_db(db_path_for(db, cfg))
    repo = Repository(conn)
    try:
        with handle_errors():
            report = TopicExtractor(build_gateway(repo, cfg), repo).extract_document(document_id)
    finally:
        conn.close()
    _print_report(report.processed, report.total, report.errors)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _read_text(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(err_unreadable_file(str(path), str(exc)))
        raise typer.Exit(1)
    if not text.strip():
        console.print(err_invalid_input(f"'{path}' contains no text."))
        raise typer.Exit(1)
    return text


def _make_chunker(cfg: CortexConfig, min_size: int | None, max_size: int | None) -> ParagraphChunker:
    with handle_errors():
        return ParagraphChunker(
            min_size=min_size if min_size is not None else cfg.chunking.min_size,
            max_size=max_size if max_size is not None else cfg.chunking.max_size,
        )


def _print_report(processed: int, total: int, errors: list[str]) -> None:
    colour = "green" if not errors else "yellow"
    console.print(f"[{colour}]✓[/] Topics extracted for {processed}/{total} chunk(s)")
    for message in errors:
        console.print(f"  [yellow]⚠[/] {escape(message)}")
