"""Tests for the shared query helpers."""

from __future__ import annotations

import tree_sitter_python
from tree_sitter import Language, Parser

from brightpanda.plugins.extractor import (
    compile_query,
    execute_query,
    node_line,
    node_text,
    strip_quotes,
)

PY_LANGUAGE = Language(tree_sitter_python.language())


def test_strip_quotes_handles_common_literals() -> None:
    assert strip_quotes('"/health"') == "/health"
    assert strip_quotes("'/health'") == "/health"
    assert strip_quotes("`/health`") == "/health"
    assert strip_quotes('"""doc"""') == "doc"
    assert strip_quotes("f'/users/{id}'") == "/users/{id}"
    assert strip_quotes("rb'raw'") == "raw"
    assert strip_quotes("bare") == "bare"
    assert strip_quotes('"') == '"'
    assert strip_quotes("") == ""
    assert strip_quotes(None) == ""


def test_compile_query_returns_none_for_invalid_source() -> None:
    assert compile_query(PY_LANGUAGE, "((( nope", label="broken") is None
    assert compile_query(PY_LANGUAGE, "   ") is None


def test_execute_query_groups_captures_by_name() -> None:
    source = b"import os\nimport sys\n"
    tree = Parser(PY_LANGUAGE).parse(source)
    query = compile_query(PY_LANGUAGE, "(import_statement name: (dotted_name) @module)")

    matches = list(execute_query(query, tree))

    assert [node_text(match.node("module"), source) for match in matches] == ["os", "sys"]
    assert [node_line(match.node("module")) for match in matches] == [1, 2]
    assert matches[0].has("module")
    assert not matches[0].has("missing")
    assert matches[0].node("missing") is None


def test_execute_query_tolerates_missing_inputs() -> None:
    assert list(execute_query(None, None)) == []
    assert node_text(None, b"") == ""
    assert node_line(None) == 0
