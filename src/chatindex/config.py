"""chatindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CHATINDEX_DB_PATH, CHATINDEX_EMBEDDING_PROVIDER,
     CHATINDEX_EMBEDDING_MODEL, CHATINDEX_DEFAULT_TOP_K)
  3. Per-project chatindex.yaml
  4. Global ~/.chatindex/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".chatindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "chatindex.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_top_k or overlap_chars.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

# Known top-level sections. Unknown keys produce a warning.
_KNOWN_SECTIONS: frozenset[str] = frozenset(["database", "embedding", "chunking", "search"])

EMBEDDING_PROVIDERS: frozenset[str] = frozenset(["hash", "litellm"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Store location (chatindex.yaml: database:)."""

    path: str = "data/conversations.db"


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (chatindex.yaml: embedding:).

    Attributes:
        provider: 'hash' (local, deterministic) or 'litellm' (remote model).
        model: LiteLLM model string, used when provider is 'litellm'.
        dimensions: Vector length of the remote model.
        batch_size: Chunks embedded and committed per backfill batch.
    """

    provider: str = "hash"
    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 128


@dataclass
class ChunkingCfg:
    """Chunk size and overlap in characters (chatindex.yaml: chunking:)."""

    max_chars: int = 1200
    overlap_chars: int = 180


@dataclass
class SearchCfg:
    """Retrieval limits and fusion constants (chatindex.yaml: search:)."""

    default_top_k: int = 10
    max_top_k: int = 100
    rrf_k: int = 60
    exact_match_boost: float = 0.03


@dataclass
class ChatIndexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ChatIndexConfig) -> None:
    if cfg.embedding.provider not in EMBEDDING_PROVIDERS:
        raise ConfigError(
            f"embedding.provider must be one of {sorted(EMBEDDING_PROVIDERS)}, "
            f"got '{cfg.embedding.provider}'."
        )
    positive = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.batch_size": cfg.embedding.batch_size,
        "chunking.max_chars": cfg.chunking.max_chars,
        "search.default_top_k": cfg.search.default_top_k,
        "search.max_top_k": cfg.search.max_top_k,
    }
    for name, value in positive.items():
        if value < 1:
            raise ConfigError(f"{name} must be >= 1, got {value}.")
    if cfg.chunking.overlap_chars < 0:
        raise ConfigError(f"chunking.overlap_chars must be >= 0, got {cfg.chunking.overlap_chars}.")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ChatIndexConfig:
    """Build a *ChatIndexConfig* from a merged raw YAML dict."""
    cfg = ChatIndexConfig()

    try:
        if "database" in data:
            d = data["database"] or {}
            cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                provider=str(e.get("provider", cfg.embedding.provider)).lower(),
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                max_chars=int(c.get("max_chars", cfg.chunking.max_chars)),
                overlap_chars=int(c.get("overlap_chars", cfg.chunking.overlap_chars)),
            )

        if "search" in data:
            s = data["search"] or {}
            cfg.search = SearchCfg(
                default_top_k=int(s.get("default_top_k", cfg.search.default_top_k)),
                max_top_k=int(s.get("max_top_k", cfg.search.max_top_k)),
                rrf_k=int(s.get("rrf_k", cfg.search.rrf_k)),
                exact_match_boost=float(
                    s.get("exact_match_boost", cfg.search.exact_match_boost)
                ),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: ChatIndexConfig) -> ChatIndexConfig:
    """Apply CHATINDEX_* environment variable overrides."""
    if db_path := os.environ.get("CHATINDEX_DB_PATH"):
        cfg.database.path = db_path
    if provider := os.environ.get("CHATINDEX_EMBEDDING_PROVIDER"):
        cfg.embedding.provider = provider.lower()
    if model := os.environ.get("CHATINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if top_k := os.environ.get("CHATINDEX_DEFAULT_TOP_K"):
        try:
            cfg.search.default_top_k = int(top_k)
        except ValueError as exc:
            raise ConfigError(f"CHATINDEX_DEFAULT_TOP_K must be an integer, got '{top_k}'.") from exc
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ChatIndexConfig:
    """Load and return a merged *ChatIndexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *chatindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *ChatIndexConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is invalid (unknown provider, non-positive sizes).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
