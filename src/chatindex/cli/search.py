"""chatindex search / ask / show / context — query the archive.

search:  lexical (BM25), semantic (cosine) or hybrid (RRF) retrieval with
         optional conversation / role / date filters.
ask:     extractive answer with citations from hybrid retrieval.
show:    one conversation with all its messages.
context: one message with its neighbours.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chatindex.cli.common import console, echo_json, open_services
from chatindex.cli.errors import (
    err_conversation_not_found,
    err_embedding_failed,
    err_invalid_mode,
    err_message_not_found,
    err_no_api_key_for_model,
)
from chatindex.db.models import Message, SearchFilters
from chatindex.rag.embeddings import EmbeddingProviderError
from chatindex.rag.search import SearchHit
from chatindex.text import build_snippet

SEARCH_MODES = ("lexical", "semantic", "hybrid")

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the database (overrides database.path)."),
]
_JsonOption = Annotated[bool, typer.Option("--json", help="Print the result as JSON.")]


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="lexical | semantic | hybrid"),
    ] = "hybrid",
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results (default: search.default_top_k)."),
    ] = None,
    conversation: Annotated[
        str | None,
        typer.Option("--conversation", help="Only this conversation id."),
    ] = None,
    role: Annotated[
        str | None,
        typer.Option("--role", help="Only messages with this role (user, assistant, ...)."),
    ] = None,
    date_from: Annotated[
        str | None,
        typer.Option("--from", help="Earliest created_at (ISO date or timestamp)."),
    ] = None,
    date_to: Annotated[
        str | None,
        typer.Option("--to", help="Latest created_at (ISO date or timestamp)."),
    ] = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Search the conversation archive."""
    mode = mode.lower()
    if mode not in SEARCH_MODES:
        console.print(err_invalid_mode(mode))
        raise typer.Exit(1)

    filters = SearchFilters(
        conversation_id=conversation, role=role, date_from=date_from, date_to=date_to
    )
    with open_services(db) as services:
        k = top_k if top_k is not None else services.config.search.default_top_k
        run = {
            "lexical": services.search_service.search_lexical,
            "semantic": services.search_service.search_semantic,
            "hybrid": services.search_service.search_hybrid,
        }[mode]
        try:
            hits = run(query, filters, k)
        except EnvironmentError as exc:
            console.print(err_no_api_key_for_model(services.embedding_service.provider.model))
            raise typer.Exit(1) from exc
        except EmbeddingProviderError as exc:
            console.print(err_embedding_failed(str(exc)))
            raise typer.Exit(1) from exc

    if as_json:
        echo_json({"query": query, "mode": mode, "results": [asdict(h) for h in hits]})
        return

    if not hits:
        console.print(f"[yellow]No results for[/] '{query}' [dim]({mode})[/]")
        return
    _show_hits(hits, f"[bold]{mode.capitalize()} results[/] [dim]for '{query}'[/]")


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about your conversations.")],
    max_citations: Annotated[
        int,
        typer.Option("--max-citations", "-n", min=1, help="Maximum number of citations."),
    ] = 5,
    conversation: Annotated[
        str | None,
        typer.Option("--conversation", help="Only this conversation id."),
    ] = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Answer a question with citations from the archive."""
    filters = SearchFilters(conversation_id=conversation)
    with open_services(db) as services:
        try:
            answer = services.search_service.answer_with_citations(question, filters, max_citations)
        except EnvironmentError as exc:
            console.print(err_no_api_key_for_model(services.embedding_service.provider.model))
            raise typer.Exit(1) from exc
        except EmbeddingProviderError as exc:
            console.print(err_embedding_failed(str(exc)))
            raise typer.Exit(1) from exc

    if as_json:
        echo_json(asdict(answer))
        return

    console.print(Panel(escape(answer.answer), title="[bold]Answer[/]", expand=False))
    if not answer.citations:
        return

    table = Table(title="Citations", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Conversation")
    table.add_column("Role", style="dim")
    table.add_column("Date", style="dim")
    table.add_column("Message id", style="dim")
    table.add_column("Score", justify="right")
    for i, c in enumerate(answer.citations, start=1):
        table.add_row(
            str(i), escape(c.conversation_title), c.role, c.created_at[:10], c.message_id, f"{c.score:.4f}"
        )
    console.print(table)


def show_cmd(
    conversation_id: Annotated[str, typer.Argument(help="Conversation id.")],
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show a conversation with all its messages."""
    with open_services(db) as services:
        lookup = services.search_service.get_conversation(conversation_id)

    if not lookup.found or lookup.conversation is None:
        console.print(err_conversation_not_found(conversation_id))
        raise typer.Exit(1)

    if as_json:
        echo_json(asdict(lookup))
        return

    conv = lookup.conversation
    console.print(
        Panel(
            f"Id:       {conv.id}\n"
            f"Created:  [dim]{conv.created_at}[/]\n"
            f"Updated:  [dim]{conv.updated_at}[/]\n"
            f"Messages: [bold]{len(lookup.messages)}[/]",
            title=f"[bold]{escape(conv.title)}[/]",
            expand=False,
        )
    )
    for message in lookup.messages:
        _show_message(message)


def context_cmd(
    message_id: Annotated[str, typer.Argument(help="Message id.")],
    before: Annotated[int, typer.Option("--before", "-b", min=0, help="Messages before.")] = 2,
    after: Annotated[int, typer.Option("--after", "-a", min=0, help="Messages after.")] = 2,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show a message with its surrounding messages."""
    with open_services(db) as services:
        context = services.search_service.get_message_context(message_id, before, after)

    if not context.found:
        console.print(err_message_not_found(message_id))
        raise typer.Exit(1)

    if as_json:
        echo_json(asdict(context))
        return

    title = context.conversation.title if context.conversation else "(unknown conversation)"
    console.print(f"[bold]{escape(title)}[/]")
    for message in context.messages:
        _show_message(message, focus=message.id == context.focus_message_id)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_hits(hits: list[SearchHit], title: str) -> None:
    table = Table(title=title, show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Conversation")
    table.add_column("Role", style="dim")
    table.add_column("Date", style="dim")
    table.add_column("Snippet")
    for hit in hits:
        table.add_row(
            str(hit.rank),
            f"{hit.score:.4f}",
            f"{escape(hit.conversation_title)}\n[dim]{escape(hit.message_id)}[/]",
            hit.role,
            hit.created_at[:10],
            escape(hit.snippet),
        )
    console.print(table)


def _show_message(message: Message, focus: bool = False) -> None:
    style = "bold cyan" if focus else "bold"
    marker = "→ " if focus else ""
    console.print(
        Panel(
            escape(build_snippet(message.content, "", max_len=2000)),
            title=f"{marker}[{style}]{message.role}[/] [dim]#{message.position} · {message.created_at}[/]",
            subtitle=f"[dim]{message.id}[/]",
            expand=True,
        )
    )
