"""Tests for Express route and axios / fetch call extraction."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from brightpanda.models import EdgeType, HttpMethod
from brightpanda.plugins import JavaScriptPlugin
from brightpanda.plugins.base import DEFAULT_QUERY_DIR
from brightpanda.plugins.javascript import CALLS_QUERY, IMPORTS_QUERY, ROUTES_QUERY

GATEWAY_SOURCE = """
const express = require('express');
import axios from 'axios';

const app = express();
const router = express.Router();

app.get('/users', listUsers);
app.post('/users', (req, res) => res.send('ok'));
router.delete('/users/:id', controller.remove);

async function sync() {
  await axios.post('http://billing/charge');
  await fetch("http://inventory/items");
  cache.get('key');
}
"""


def _write(tmp_path: Path, relative: str, content: str) -> str:
    path = tmp_path / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return str(path)


def test_express_routes_become_endpoints(
    tmp_path: Path, javascript_plugin: JavaScriptPlugin
) -> None:
    filepath = _write(tmp_path, "gateway/server.js", GATEWAY_SOURCE)

    result = javascript_plugin.parse_file(filepath)

    assert result.success
    summary = [
        (endpoint.method, endpoint.path, endpoint.handler) for endpoint in result.endpoints
    ]
    assert summary == [
        (HttpMethod.GET, "/users", "listUsers"),
        (HttpMethod.POST, "/users", None),
        (HttpMethod.DELETE, "/users/:id", "controller.remove"),
    ]
    assert {endpoint.service for endpoint in result.endpoints} == {"gateway"}
    assert result.endpoints[0].line == 7


def test_client_calls_become_edges(tmp_path: Path, javascript_plugin: JavaScriptPlugin) -> None:
    filepath = _write(tmp_path, "gateway/server.js", GATEWAY_SOURCE)

    result = javascript_plugin.parse_file(filepath)

    summary = [(edge.method, edge.to_service) for edge in result.edges]
    assert summary == [
        ("post", "http://billing/charge"),
        ("get", "http://inventory/items"),
    ]
    assert all(edge.type is EdgeType.HTTP_CALL for edge in result.edges)
    assert all(edge.confidence == pytest.approx(0.8) for edge in result.edges)


def test_imports_and_requires_are_collected(
    tmp_path: Path, javascript_plugin: JavaScriptPlugin
) -> None:
    filepath = _write(tmp_path, "gateway/server.js", GATEWAY_SOURCE)

    result = javascript_plugin.parse_file(filepath)

    assert sorted(result.imports) == ["axios", "express"]


def test_bundled_queries_match_builtin_fallbacks() -> None:
    query_dir = DEFAULT_QUERY_DIR / "javascript"

    assert (query_dir / "routes.scm").read_text(encoding="utf-8") == ROUTES_QUERY
    assert (query_dir / "calls.scm").read_text(encoding="utf-8") == CALLS_QUERY
    assert (query_dir / "imports.scm").read_text(encoding="utf-8") == IMPORTS_QUERY


def test_supports_javascript_extensions(javascript_plugin: JavaScriptPlugin) -> None:
    assert javascript_plugin.supports_file("web/app.js")
    assert javascript_plugin.supports_file("web/App.jsx")
    assert javascript_plugin.supports_file("web/config.mjs")
    assert not javascript_plugin.supports_file("web/app.ts")
