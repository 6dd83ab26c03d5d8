"""chatindex stats command.

Shows archive overview: database, indexed content, latest import and the
active embedding provider.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from chatindex.cli.common import console, echo_json, open_services, resolve_db_path
from chatindex.cli.errors import err_no_db
from chatindex.db.models import ImportRecord, OverviewStats


def stats_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (overrides database.path)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the statistics as JSON."),
    ] = False,
) -> None:
    """Show archive statistics and embedding provider health."""
    db_path = resolve_db_path(db)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    with open_services(db_path) as services:
        stats = services.repository.overview_stats()
        provider = services.embedding_service.provider_info()
        missing = services.repository.count_missing_embeddings()

    if as_json:
        echo_json({"stats": asdict(stats), "embedding_provider": provider, "missing": missing})
        return

    _show_database_panel(db_path, stats, missing)
    _show_import_panel(stats.latest_import)
    _show_provider_panel(provider)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_database_panel(db_path: Path, stats: OverviewStats, missing: int) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Name", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Conversations", f"{stats.conversations:,}")
    table.add_row("Messages", f"{stats.messages:,}")
    table.add_row("Chunks", f"{stats.chunks:,}")
    table.add_row("Embeddings", f"{stats.embeddings:,}")
    if missing:
        table.add_row("[yellow]Missing[/]", f"[yellow]{missing:,}[/]")

    console.print(
        Panel(table, title=f"[bold]Archive[/] [dim]{db_path} ({size_mb:.1f} MB)[/]", expand=False)
    )


def _show_import_panel(record: ImportRecord | None) -> None:
    if record is None:
        console.print(
            Panel(
                "[dim]No imports yet.[/]\n  Run:  chatindex ingest --file <export.json>",
                title="[bold]Latest Import[/]",
                expand=False,
            )
        )
        return

    status_style = {"completed": "green", "failed": "red"}.get(record.status, "yellow")
    lines = [
        f"Id:       {record.id}",
        f"Source:   {record.source_label}",
        f"File:     [dim]{record.file_path}[/]",
        f"Status:   [{status_style}]{record.status}[/]",
        f"Started:  [dim]{(record.imported_at or '')[:16]}[/]",
        f"Counts:   {record.parsed_conversations} conversations · "
        f"{record.parsed_messages} messages · {record.parsed_chunks} chunks · "
        f"{record.skipped_messages} skipped",
    ]
    if record.error_text and record.error_text.strip():
        lines.append(f"Error:    [red]{record.error_text.strip().splitlines()[-1]}[/]")
    console.print(Panel("\n".join(lines), title="[bold]Latest Import[/]", expand=False))


def _show_provider_panel(provider: dict[str, object]) -> None:
    console.print(
        Panel(
            f"Model:       [bold]{provider['model']}[/]\n"
            f"Dimensions:  {provider['dimensions']}",
            title="[bold]Embedding Provider[/]",
            expand=False,
        )
    )
