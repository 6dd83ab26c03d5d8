"""Shared CLI helpers: console, config loading, service construction."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from chatindex.cli.errors import err_config
from chatindex.config import ChatIndexConfig, ConfigError, load_config
from chatindex.services import Services, create_services

console = Console()


def load_cli_config() -> ChatIndexConfig:
    """load_config() with ConfigError rendered as an actionable message."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def open_services(db: Path | None) -> Services:
    """Build services from the merged config; --db overrides database.path."""
    cfg = load_cli_config()
    return create_services(cfg, db_path=db)


def resolve_db_path(db: Path | None) -> Path:
    return db if db is not None else Path(load_cli_config().database.path)


def echo_json(data: object) -> None:
    """Print *data* as indented JSON, without rich highlighting."""
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
