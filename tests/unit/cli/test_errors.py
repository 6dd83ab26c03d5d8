"""Tests for chatindex CLI error messages."""

from __future__ import annotations

from chatindex.cli.errors import (
    err_config,
    err_conversation_not_found,
    err_embedding_failed,
    err_eval_file,
    err_export_parse,
    err_file_not_found,
    err_invalid_mode,
    err_message_not_found,
    err_no_api_key,
    err_no_api_key_for_model,
    err_no_db,
)


def test_err_no_api_key_contains_env_var() -> None:
    msg = err_no_api_key("openai")
    assert "OPENAI_API_KEY" in msg
    assert "CHATINDEX_EMBEDDING_PROVIDER=hash" in msg


def test_err_no_api_key_unknown_provider() -> None:
    assert "ACME_API_KEY" in err_no_api_key("acme")


def test_err_no_api_key_for_model_uses_prefix() -> None:
    assert "VOYAGE_API_KEY" in err_no_api_key_for_model("voyage/voyage-3")


def test_err_no_db_suggests_ingest() -> None:
    msg = err_no_db("data/conversations.db")
    assert "data/conversations.db" in msg
    assert "chatindex ingest" in msg


def test_err_file_not_found() -> None:
    assert "export.json" in err_file_not_found("export.json")


def test_err_export_parse_includes_detail() -> None:
    msg = err_export_parse("x.json", "Expecting value: line 1")
    assert "x.json" in msg
    assert "Expecting value" in msg


def test_err_config_includes_detail() -> None:
    assert "embedding.provider" in err_config("embedding.provider must be one of")


def test_err_embedding_failed_suggests_reindex() -> None:
    assert "chatindex reindex" in err_embedding_failed("timeout")


def test_err_invalid_mode_lists_modes() -> None:
    msg = err_invalid_mode("fuzzy")
    assert "lexical" in msg and "semantic" in msg and "hybrid" in msg


def test_not_found_messages_suggest_search() -> None:
    assert "chatindex search" in err_conversation_not_found("c")
    assert "chatindex search" in err_message_not_found("m")


def test_err_eval_file() -> None:
    msg = err_eval_file("q.json", "No such file")
    assert "q.json" in msg
    assert "expected_any_of" in msg
