"""chatindex rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from chatindex.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from chatindex.rag.llm_client import provider_of


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or use the local provider:  export CHATINDEX_EMBEDDING_PROVIDER=hash"
    )


def err_no_api_key_for_model(model: str) -> str:
    return err_no_api_key(provider_of(model))


def err_no_db(db_path: str) -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  chatindex ingest --file <export.json>"
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] Export file not found: '{path}'\n"
        "  Check the path passed to --file."
    )


def err_export_parse(path: str, detail: str) -> str:
    """Export file is unreadable or not JSON."""
    return (
        f"[red]Error:[/] Could not parse export '{path}'.\n"
        f"  {detail}\n"
        "  The file must be a JSON conversation export (UTF-8)."
    )


def err_config(detail: str) -> str:
    """Invalid or forbidden value in chatindex.yaml / ~/.chatindex/config.yaml."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix chatindex.yaml or ~/.chatindex/config.yaml and retry."
    )


def err_embedding_failed(detail: str) -> str:
    return (
        f"[red]Error:[/] Embedding provider failed.\n"
        f"  {detail}\n"
        "  Already indexed batches are kept. Run:  chatindex reindex"
    )


def err_invalid_mode(mode: str) -> str:
    return (
        f"[red]Error:[/] Unknown search mode '{mode}'.\n"
        "  Use one of:  lexical, semantic, hybrid"
    )


def err_conversation_not_found(conversation_id: str) -> str:
    return (
        f"[yellow]Conversation not found:[/] '{conversation_id}'\n"
        "  Run:  chatindex search <query>  to find conversation ids."
    )


def err_message_not_found(message_id: str) -> str:
    return (
        f"[yellow]Message not found:[/] '{message_id}'\n"
        "  Run:  chatindex search <query>  to find message ids."
    )


def err_eval_file(path: str, detail: str) -> str:
    """Eval query file is missing or malformed."""
    return (
        f"[red]Error:[/] Cannot load eval queries from '{path}'.\n"
        f"  {detail}\n"
        '  Expected a JSON/YAML list of {"query": ..., "expected_any_of": [...]} cases.'
    )
