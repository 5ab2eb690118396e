"""JavaScript language plugin (Express routes, axios / fetch calls)."""

from __future__ import annotations

from typing import Optional

import tree_sitter_javascript
from tree_sitter import Language

from .base import ExtractionContext, TreeSitterPlugin
from .extractor import QueryMatch

ROUTES_QUERY = """\
; Express style routes: app.get('/path', handler), router.post('/path', ...)
(call_expression
  function: (member_expression
    object: (identifier) @route.object
    property: (property_identifier) @route.decorator)
  arguments: (arguments
    .
    (string) @route.path) @route.args
  (#match? @route.decorator "^(get|post|put|delete|patch|head|options)$")) @route
"""

CALLS_QUERY = """\
; Outbound HTTP calls: axios.get('http://...'), got.post(...)
(call_expression
  function: (member_expression
    object: (identifier) @http.client.lib
    property: (property_identifier) @http.client.method)
  arguments: (arguments
    .
    (string) @http.client.url))

; fetch('http://...')
(call_expression
  function: (identifier) @http.client.lib
  arguments: (arguments
    .
    (string) @http.client.url)
  (#eq? @http.client.lib "fetch"))
"""

IMPORTS_QUERY = """\
(import_statement
  source: (string) @import.module)

(call_expression
  function: (identifier) @import.require
  arguments: (arguments
    .
    (string) @import.module)
  (#eq? @import.require "require"))
"""

_HANDLER_NODES = {"identifier", "member_expression"}


class JavaScriptPlugin(TreeSitterPlugin):
    name = "javascript"
    version = "1.0.0"
    extensions = ("js", "jsx", "mjs", "cjs")

    BUILTIN_QUERIES = {
        "routes": ROUTES_QUERY,
        "calls": CALLS_QUERY,
        "imports": IMPORTS_QUERY,
    }
    DEFAULT_HTTP_CLIENTS = ("axios", "got", "superagent", "ky", "fetch")

    def load_language(self) -> Language:
        return Language(tree_sitter_javascript.language())

    def accept_route(self, match: QueryMatch, path: str, ctx: ExtractionContext) -> bool:
        # `axios.get('/x')` looks like a route registration.
        if ctx.text(match.node("route.object")) in self.http_clients:
            return False
        return path.startswith("/")

    def route_handler(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[str]:
        """The last argument, when it names a function rather than defining one inline."""
        args = match.node("route.args")
        if args is None or args.named_child_count < 2:
            return None
        last = args.named_children[-1]
        if last.type not in _HANDLER_NODES:
            return None
        return ctx.text(last) or None


__all__ = ["JavaScriptPlugin", "ROUTES_QUERY", "CALLS_QUERY", "IMPORTS_QUERY"]
