"""Python language plugin (Flask / FastAPI routes, requests / httpx calls)."""

from __future__ import annotations

from typing import Optional

import tree_sitter_python
from tree_sitter import Language

from ..models import HttpMethod
from .base import ExtractionContext, TreeSitterPlugin
from .extractor import QueryMatch, strip_quotes

ROUTES_QUERY = """\
; Flask / FastAPI style route decorators: @app.get("/path"), @app.route("/path", methods=[...])
(decorated_definition
  (decorator
    (call
      function: (attribute
        attribute: (identifier) @route.decorator)
      arguments: (argument_list
        .
        (string) @route.path) @route.args)) @route
  definition: (function_definition
    name: (identifier) @route.handler)
  (#match? @route.decorator "^(route|api_route|get|post|put|delete|patch|head|options)$"))
"""

CALLS_QUERY = """\
; Outbound HTTP calls: requests.get("http://..."), httpx.post("...")
(call
  function: (attribute
    object: (identifier) @http.client.lib
    attribute: (identifier) @http.client.method)
  arguments: (argument_list
    .
    (string) @http.client.url))
"""

IMPORTS_QUERY = """\
(import_statement
  name: (dotted_name) @import.module)

(import_statement
  name: (aliased_import
    name: (dotted_name) @import.module))

(import_from_statement
  module_name: (dotted_name) @import.from.module)

(import_from_statement
  module_name: (relative_import) @import.from.module)
"""

_METHOD_CONTAINERS = {"list", "tuple", "set"}


class PythonPlugin(TreeSitterPlugin):
    name = "python"
    version = "1.0.0"
    extensions = ("py", "pyi")

    BUILTIN_QUERIES = {
        "routes": ROUTES_QUERY,
        "calls": CALLS_QUERY,
        "imports": IMPORTS_QUERY,
    }
    DEFAULT_HTTP_CLIENTS = ("requests", "httpx")

    def load_language(self) -> Language:
        return Language(tree_sitter_python.language())

    def route_method(self, match: QueryMatch, ctx: ExtractionContext) -> HttpMethod:
        method = HttpMethod.from_string(ctx.text(match.node("route.decorator")))
        if method is not HttpMethod.UNKNOWN:
            return method
        declared = self._declared_method(match, ctx)
        if declared is not None:
            return declared
        return HttpMethod.GET

    def _declared_method(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[HttpMethod]:
        """First recognised verb from a ``methods=[...]`` keyword argument."""
        args = match.node("route.args")
        if args is None:
            return None
        for child in args.named_children:
            if child.type != "keyword_argument":
                continue
            if ctx.text(child.child_by_field_name("name")) != "methods":
                continue
            value = child.child_by_field_name("value")
            if value is None:
                return None
            items = value.named_children if value.type in _METHOD_CONTAINERS else [value]
            for item in items:
                if item.type != "string":
                    continue
                method = HttpMethod.from_string(strip_quotes(ctx.text(item)))
                if method is not HttpMethod.UNKNOWN:
                    return method
        return None


__all__ = ["PythonPlugin", "ROUTES_QUERY", "CALLS_QUERY", "IMPORTS_QUERY"]
