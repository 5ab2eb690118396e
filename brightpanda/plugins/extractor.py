"""Shared helpers for running tree-sitter queries and reading captured text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from tree_sitter import Language, Node, Query, QueryCursor, QueryError, Tree

from ..logging import get_logger

_LOGGER = get_logger("extractor")

_STRING_PREFIX = re.compile(r"^[rRbBuUfF]{1,2}(?=['\"])")
_QUOTES = ('"', "'", "`")


@dataclass
class QueryMatch:
    """One pattern match with its captures keyed by capture name."""

    pattern_index: int
    captures: Dict[str, List[Node]] = field(default_factory=dict)

    def node(self, *names: str) -> Optional[Node]:
        """Return the first node captured under any of ``names``."""
        for name in names:
            nodes = self.captures.get(name)
            if nodes:
                return nodes[0]
        return None

    def has(self, name: str) -> bool:
        return bool(self.captures.get(name))


def compile_query(language: Language, source: str, *, label: str = "") -> Optional[Query]:
    """Compile ``source`` for ``language``; returns None when the query is invalid."""
    if not source or not source.strip():
        return None
    try:
        return Query(language, source)
    except (QueryError, ValueError) as exc:
        _LOGGER.error("Failed to compile query %s: %s", label or "<inline>", exc)
        return None


def execute_query(query: Optional[Query], tree: Optional[Tree]) -> Iterator[QueryMatch]:
    """Yield every match of ``query`` against the root of ``tree``."""
    if query is None or tree is None:
        return
    cursor = QueryCursor(query)
    for pattern_index, captures in cursor.matches(tree.root_node):
        normalized: Dict[str, List[Node]] = {}
        for name, value in captures.items():
            normalized[name] = list(value) if isinstance(value, list) else [value]
        yield QueryMatch(pattern_index=pattern_index, captures=normalized)


def node_text(node: Optional[Node], source: bytes) -> str:
    if node is None:
        return ""
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def node_line(node: Optional[Node]) -> int:
    """Return the 1-based line a node starts on."""
    if node is None:
        return 0
    return node.start_point[0] + 1


def strip_quotes(text: Optional[str]) -> str:
    """Remove surrounding quotes (and Python string prefixes) from a literal."""
    if not text:
        return ""
    body = _STRING_PREFIX.sub("", text, count=1)
    for triple in ('"""', "'''"):
        if len(body) >= 6 and body.startswith(triple) and body.endswith(triple):
            return body[3:-3]
    if len(body) >= 2 and body[0] in _QUOTES and body[-1] == body[0]:
        return body[1:-1]
    return text


__all__ = [
    "QueryMatch",
    "compile_query",
    "execute_query",
    "node_line",
    "node_text",
    "strip_quotes",
]
