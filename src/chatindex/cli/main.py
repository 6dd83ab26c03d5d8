"""chatindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from chatindex.cli.evaluate import eval_cmd
from chatindex.cli.ingest import ingest_cmd, reindex_cmd
from chatindex.cli.search import ask_cmd, context_cmd, search_cmd, show_cmd
from chatindex.cli.status import stats_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("chatindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"chatindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="chatindex",
    help=(
        "chatindex — searchable archive of exported AI-assistant conversations.\n\n"
        "  chatindex ingest --file export.json   Import an export and embed it.\n"
        "  chatindex search QUERY                Lexical, semantic or hybrid search."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """chatindex — searchable archive of exported AI-assistant conversations."""


app.command("ingest")(ingest_cmd)
app.command("reindex")(reindex_cmd)
app.command("stats")(stats_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("show")(show_cmd)
app.command("context")(context_cmd)
app.command("eval")(eval_cmd)


if __name__ == "__main__":
    app()
