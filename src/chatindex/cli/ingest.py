"""chatindex ingest / reindex — load exports and keep the search index in sync.

ingest:  hash → dedup → parse → chunk → write, then backfill missing embeddings.
reindex: rebuild the FTS index from chunks, then backfill (or, with --force,
         recompute) every embedding.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from chatindex.cli.common import console, echo_json, open_services
from chatindex.cli.errors import (
    err_embedding_failed,
    err_export_parse,
    err_file_not_found,
    err_no_api_key_for_model,
)
from chatindex.ingest.parser import ExportParseError
from chatindex.rag.embeddings import EmbeddingProviderError, EmbeddingService, IndexResult
from chatindex.services import Services

_CLI_SOURCE_LABEL = "cli"


def ingest_cmd(
    file: Annotated[
        Path,
        typer.Option("--file", "-f", help="Conversation export (JSON) to ingest."),
    ],
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Label recorded with the import."),
    ] = _CLI_SOURCE_LABEL,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (overrides database.path)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
) -> None:
    """Ingest one conversation export and embed its new chunks."""
    if not file.is_file():
        console.print(err_file_not_found(str(file)))
        raise typer.Exit(1)

    services = open_services(db)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Ingesting {file.name}…", total=None)
            try:
                result = services.ingest_pipeline.ingest(file, source_label=source)
            except ExportParseError as exc:
                console.print(err_export_parse(str(file), str(exc)))
                raise typer.Exit(1) from exc

        embeddings = _backfill(services, force=False)
    finally:
        services.close()

    if as_json:
        echo_json({"ingest": asdict(result), "embeddings": asdict(embeddings)})
        return

    if result.skipped_as_duplicate:
        console.print(f"  [dim]↷ Unchanged — already imported as {result.import_id}[/]")
    lines = [
        f"Import:         [bold]{result.import_id}[/]",
        f"Source:         {result.source_label}",
        f"Conversations:  [bold]{result.conversations}[/]",
        f"Messages:       [bold]{result.messages}[/]",
        f"Chunks:         [bold]{result.chunks}[/]",
        f"Embedded:       {embeddings.indexed} new, {embeddings.remaining} remaining",
        f"Duration:       [dim]{result.duration_ms} ms[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Ingest[/]", expand=False))


def reindex_cmd(
    force: Annotated[
        bool,
        typer.Option("--force", help="Discard every stored vector and re-embed all chunks."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (overrides database.path)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
) -> None:
    """Rebuild the full-text index and backfill embeddings."""
    services = open_services(db)
    try:
        fts_rows = services.repository.rebuild_fts()
        embeddings = _backfill(services, force=force)
    finally:
        services.close()

    if as_json:
        echo_json({"fts_rows": fts_rows, "embeddings": asdict(embeddings)})
        return

    console.print(f"  [green]✓[/] Full-text index rebuilt ({fts_rows:,} chunks)")
    verb = "Re-embedded" if force else "Embedded"
    console.print(
        f"  [green]✓[/] {verb} {embeddings.indexed:,} chunks "
        f"({embeddings.remaining:,} remaining)"
    )


def _backfill(services: Services, force: bool) -> IndexResult:
    """Run index_missing / reindex_all with provider errors rendered for the user."""
    embedding_service: EmbeddingService = services.embedding_service
    batch_size = services.config.embedding.batch_size
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Embedding ({embedding_service.provider.model})…", total=None)
            if force:
                return embedding_service.reindex_all(batch_size)
            return embedding_service.index_missing(batch_size)
    except EnvironmentError as exc:
        console.print(err_no_api_key_for_model(embedding_service.provider.model))
        raise typer.Exit(1) from exc
    except EmbeddingProviderError as exc:
        console.print(err_embedding_failed(str(exc)))
        raise typer.Exit(1) from exc
