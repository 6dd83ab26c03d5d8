"""chatindex eval — hit rate and MRR of hybrid search over labelled queries."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from chatindex.cli.common import console, echo_json, open_services
from chatindex.cli.errors import err_eval_file
from chatindex.rag.evaluation import DEFAULT_QUERIES_PATH, evaluate, load_eval_cases


def eval_cmd(
    queries: Annotated[
        Path,
        typer.Option("--queries", "-q", help="JSON or YAML file with eval cases."),
    ] = DEFAULT_QUERIES_PATH,
    top_k: Annotated[int, typer.Option("--top-k", "-k", min=1, help="Cut-off rank.")] = 10,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (overrides database.path)."),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON.")] = False,
) -> None:
    """Evaluate retrieval quality against a set of labelled queries."""
    try:
        cases = load_eval_cases(queries)
    except (OSError, ValueError) as exc:
        console.print(err_eval_file(str(queries), str(exc)))
        raise typer.Exit(1) from exc

    with open_services(db) as services:
        report = evaluate(services.search_service, cases, top_k=top_k)

    if as_json:
        echo_json(asdict(report))
        return

    table = Table(title=f"Retrieval eval [dim]({report.query_count} queries)[/]")
    table.add_column("Query")
    table.add_column("Hit", justify="center")
    table.add_column("First rank", justify="right")
    for detail in report.details:
        table.add_row(
            escape(detail.query),
            "[green]✓[/]" if detail.hit else "[red]✗[/]",
            str(detail.first_relevant_rank) if detail.first_relevant_rank else "[dim]-[/]",
        )
    console.print(table)
    console.print(
        f"Hit rate@{top_k}: [bold]{report.hit_rate_at_k:.3f}[/]  |  "
        f"MRR@{top_k}: [bold]{report.mrr_at_k:.3f}[/]"
    )
