"""Base classes for language plugins."""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from tree_sitter import Language, Node, Query

from ..logging import get_logger
from ..models import Edge, EdgeType, Endpoint, HttpMethod, ParseResult, Service, clamp_confidence
from .extractor import QueryMatch, compile_query, execute_query, node_line, node_text, strip_quotes
from .parser_pool import DEFAULT_MAX_PARSERS, ParserPool

MAX_SOURCE_BYTES = 10 * 1024 * 1024
DEFAULT_HTTP_CALL_CONFIDENCE = 0.8
DEFAULT_QUERY_DIR = Path(__file__).resolve().parent / "queries"
QUERY_NAMES = ("routes", "calls", "imports")

_HTTP_VERBS = frozenset({"get", "post", "put", "delete", "patch", "head", "options"})

_LOGGER = get_logger("plugins")


class FileTooLargeError(ValueError):
    """Raised when a source file exceeds the parse size cap."""


def read_source(filepath: str) -> bytes:
    """Read a source file, rejecting anything above the size cap."""
    size = os.path.getsize(filepath)
    if size > MAX_SOURCE_BYTES:
        raise FileTooLargeError(f"File too large ({size} bytes): {filepath}")
    with open(filepath, "rb") as handle:
        data = handle.read(MAX_SOURCE_BYTES + 1)
    if len(data) > MAX_SOURCE_BYTES:
        raise FileTooLargeError(f"File too large: {filepath}")
    return data


class LanguagePlugin(ABC):
    """Contract for plugins that turn one language's source files into entities."""

    name: str = ""
    version: str = "1.0.0"
    extensions: Sequence[str] = ()

    def init(self) -> bool:
        """Prepare grammars and queries; True when the plugin is ready."""
        return True

    def shutdown(self) -> None:
        """Release any resources acquired by :meth:`init`."""

    def supports_file(self, filepath: str) -> bool:
        if not filepath:
            return False
        name = os.path.basename(filepath)
        if "." not in name:
            return False
        return name.rsplit(".", 1)[1] in self.extensions

    def infer_service_name(self, filepath: str) -> str:
        """Guess the owning service from the name of the file's directory."""
        if not filepath:
            return "unknown"
        directory = os.path.dirname(os.path.abspath(filepath))
        return os.path.basename(directory) or "unknown"

    def get_query_path(self, query_name: str) -> Optional[Path]:
        return None

    @abstractmethod
    def parse_file(self, filepath: str, service_name: Optional[str] = None) -> ParseResult:
        """Extract the service, endpoints, edges and imports defined in ``filepath``."""


@dataclass
class ExtractionContext:
    """Per-file state shared by the extraction hooks."""

    filepath: str
    service_name: str
    source: bytes

    def text(self, node: Optional[Node]) -> str:
        return node_text(node, self.source)


class TreeSitterPlugin(LanguagePlugin):
    """Language plugin driven by tree-sitter route, call and import queries.

    Query text is read from ``<query_dir>/<plugin name>/<query>.scm``. When a
    file is missing or does not compile, the plugin falls back to the matching
    entry of :attr:`BUILTIN_QUERIES`, which mirrors the bundled files.
    """

    BUILTIN_QUERIES: Mapping[str, str] = {}
    DEFAULT_HTTP_CLIENTS: Sequence[str] = ()
    DEFAULT_CALL_METHOD = "get"

    def __init__(
        self,
        *,
        query_dir: Path | str | None = None,
        http_clients: Optional[Sequence[str]] = None,
        http_call_confidence: Optional[float] = None,
        max_parsers: int = DEFAULT_MAX_PARSERS,
    ) -> None:
        self.query_dir = Path(query_dir) if query_dir is not None else DEFAULT_QUERY_DIR
        clients = self.DEFAULT_HTTP_CLIENTS if http_clients is None else http_clients
        self.http_clients = frozenset(clients)
        confidence = (
            DEFAULT_HTTP_CALL_CONFIDENCE if http_call_confidence is None else http_call_confidence
        )
        self.http_call_confidence = clamp_confidence(confidence)
        self.max_parsers = max_parsers
        self._pool: Optional[ParserPool] = None
        self._queries: Dict[str, Query] = {}
        self._initialized = False
        self._init_lock = threading.Lock()

    @abstractmethod
    def load_language(self) -> Language:
        """Return the tree-sitter grammar for this plugin."""

    @property
    def pool(self) -> Optional[ParserPool]:
        return self._pool

    def init(self) -> bool:
        with self._init_lock:
            if self._initialized:
                return True
            _LOGGER.info("Initializing %s plugin...", self.name)
            language = self.load_language()
            queries: Dict[str, Query] = {}
            for query_name in QUERY_NAMES:
                query = self._load_query_file(language, query_name)
                if query is None:
                    _LOGGER.warning(
                        "%s.scm unavailable for %s, using built-in query", query_name, self.name
                    )
                    query = compile_query(
                        language,
                        self.BUILTIN_QUERIES.get(query_name, ""),
                        label=f"{self.name}/{query_name}",
                    )
                if query is None:
                    _LOGGER.error("Failed to load or create %s query for %s", query_name, self.name)
                    return False
                queries[query_name] = query
            self._queries = queries
            self._pool = ParserPool(language, name=self.name, max_parsers=self.max_parsers)
            self._initialized = True
            _LOGGER.info("%s plugin initialized successfully", self.name)
            return True

    def shutdown(self) -> None:
        with self._init_lock:
            if self._pool is not None:
                self._pool.shutdown()
            self._pool = None
            self._queries = {}
            self._initialized = False

    def get_query_path(self, query_name: str) -> Optional[Path]:
        if not query_name:
            return None
        return self.query_dir / self.name / f"{query_name}.scm"

    def _load_query_file(self, language: Language, query_name: str) -> Optional[Query]:
        path = self.get_query_path(query_name)
        if path is None or not path.is_file():
            _LOGGER.debug("Query file not found: %s", path)
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _LOGGER.error("Failed to read query file %s: %s", path, exc)
            return None
        query = compile_query(language, text, label=str(path))
        if query is not None:
            _LOGGER.debug("Loaded query: %s", path)
        return query

    # ------------------------------------------------------------------
    # Parsing

    def parse_file(self, filepath: str, service_name: Optional[str] = None) -> ParseResult:
        if not isinstance(filepath, str) or not filepath:
            return ParseResult.failed("Invalid file path")
        if not self.init() or self._pool is None:
            return ParseResult.failed(f"{self.name} plugin is not initialized")

        _LOGGER.debug("Parsing %s file: %s", self.name, filepath)
        try:
            source = read_source(filepath)
        except FileTooLargeError as exc:
            _LOGGER.error("%s", exc)
            return ParseResult.failed(str(exc))
        except OSError as exc:
            _LOGGER.error("Failed to read %s: %s", filepath, exc)
            return ParseResult.failed(f"Failed to read file: {exc}")

        parser = self._pool.acquire()
        if parser is None:
            return ParseResult.failed("Failed to acquire parser")
        try:
            tree = parser.parse(source)
            if tree is None:
                return ParseResult.failed("Failed to parse file")

            syntax_errors = tree.root_node.has_error
            if syntax_errors:
                _LOGGER.warning("Syntax errors in file: %s", filepath)

            name = service_name or self.infer_service_name(filepath)
            service = Service(
                name=name,
                language=self.name,
                path=os.path.dirname(filepath) or ".",
                files=[filepath],
            )
            result = ParseResult(success=True, service=service, syntax_errors=syntax_errors)
            context = ExtractionContext(filepath=filepath, service_name=name, source=source)

            for match in execute_query(self._queries.get("routes"), tree):
                endpoint = self.extract_route(match, context)
                if endpoint is not None:
                    result.endpoints.append(endpoint)
                    _LOGGER.debug(
                        "Found endpoint: %s %s -> %s()",
                        endpoint.method.value,
                        endpoint.path,
                        endpoint.handler,
                    )

            for match in execute_query(self._queries.get("calls"), tree):
                edge = self.extract_call(match, context)
                if edge is not None:
                    result.edges.append(edge)
                    _LOGGER.debug("Found HTTP call: %s %s", edge.method, edge.endpoint)

            for match in execute_query(self._queries.get("imports"), tree):
                module = self.extract_import(match, context)
                if module:
                    result.imports.append(module)
        finally:
            self._pool.release(parser)

        _LOGGER.debug(
            "%s parsing complete: %d endpoints, %d edges, %d imports",
            self.name,
            len(result.endpoints),
            len(result.edges),
            len(result.imports),
        )
        return result

    # ------------------------------------------------------------------
    # Extraction hooks

    def extract_route(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[Endpoint]:
        path_node = match.node("route.path")
        if path_node is None:
            return None
        path = strip_quotes(ctx.text(path_node))
        if not path or not self.accept_route(match, path, ctx):
            return None
        anchor = match.node("route", "route.decorator") or path_node
        return Endpoint(
            service=ctx.service_name,
            path=path,
            method=self.route_method(match, ctx),
            handler=self.route_handler(match, ctx),
            file=ctx.filepath,
            line=node_line(anchor),
        )

    def accept_route(self, match: QueryMatch, path: str, ctx: ExtractionContext) -> bool:
        return True

    def route_method(self, match: QueryMatch, ctx: ExtractionContext) -> HttpMethod:
        """Resolve the verb from the registering call name, then a method capture, else GET."""
        method = HttpMethod.from_string(ctx.text(match.node("route.decorator")))
        if method is not HttpMethod.UNKNOWN:
            return method
        method_node = match.node("route.method")
        if method_node is not None:
            method = HttpMethod.from_string(strip_quotes(ctx.text(method_node)))
            if method is not HttpMethod.UNKNOWN:
                return method
        return HttpMethod.GET

    def route_handler(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[str]:
        return ctx.text(match.node("route.handler")) or None

    def extract_call(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[Edge]:
        lib_node = match.node("http.client.lib")
        url_node = match.node("http.client.url")
        if lib_node is None or url_node is None:
            return None
        if ctx.text(lib_node) not in self.http_clients:
            return None

        method_node = match.node("http.client.method")
        method = ctx.text(method_node) if method_node is not None else self.DEFAULT_CALL_METHOD
        if method.lower() not in _HTTP_VERBS:
            return None
        url = strip_quotes(ctx.text(url_node))
        if not url:
            return None
        return Edge(
            from_service=ctx.service_name,
            to_service=url,
            type=EdgeType.HTTP_CALL,
            method=method,
            endpoint=url,
            file=ctx.filepath,
            line=node_line(lib_node),
            confidence=self.http_call_confidence,
        )

    def extract_import(self, match: QueryMatch, ctx: ExtractionContext) -> Optional[str]:
        node = match.node("import.module", "import.from.module")
        if node is None:
            return None
        return strip_quotes(ctx.text(node)) or None


__all__ = [
    "DEFAULT_HTTP_CALL_CONFIDENCE",
    "ExtractionContext",
    "FileTooLargeError",
    "LanguagePlugin",
    "MAX_SOURCE_BYTES",
    "TreeSitterPlugin",
    "read_source",
]
