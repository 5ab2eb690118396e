"""Aggregated view of every service, endpoint and edge found in a repository."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .logging import get_logger
from .models import Edge, EdgeType, Endpoint, HttpMethod, ParseResult, Service

SCHEMA_VERSION = "1.0"
CRAWLER_VERSION = __version__
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_LOGGER = get_logger("manifest")


def format_timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_timestamp(value: object) -> Optional[float]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc).timestamp()


@dataclass
class Manifest:
    """Owns the entity collections produced by a scan.

    Services are unique by name. Endpoints and edges keep list semantics;
    a file's entities are dropped with :meth:`remove_file` before that file
    is merged again.
    """

    repo_name: str = ""
    schema_version: str = SCHEMA_VERSION
    crawler_version: str = CRAWLER_VERSION
    timestamp: float = field(default_factory=time.time)
    scan_duration_ms: int = 0
    files_analyzed: int = 0
    files_skipped: int = 0
    languages: List[str] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    endpoints: List[Endpoint] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Mutation

    def add_service(self, service: Service) -> bool:
        if not isinstance(service, Service) or not service.name:
            return False
        if self.find_service(service.name) is not None:
            return False
        self.services.append(service)
        self._record_language(service.language)
        return True

    def add_endpoint(self, endpoint: Endpoint) -> bool:
        if not isinstance(endpoint, Endpoint):
            return False
        self.endpoints.append(endpoint)
        return True

    def add_edge(self, edge: Edge) -> bool:
        if not isinstance(edge, Edge):
            return False
        self.edges.append(edge)
        return True

    def find_service(self, name: str) -> Optional[Service]:
        for service in self.services:
            if service.name == name:
                return service
        return None

    def merge_parse_result(self, result: Optional[ParseResult]) -> bool:
        """Fold one file's extraction into the manifest.

        A service already known by name absorbs the result's files and the
        incoming duplicate is discarded.
        """
        if result is None or not result.success:
            return False

        if result.service is not None:
            existing = self.find_service(result.service.name)
            if existing is not None:
                for filepath in result.service.files:
                    existing.add_file(filepath)
                self._record_language(result.service.language)
            else:
                self.services.append(result.service)
                self._record_language(result.service.language)

        self.endpoints.extend(result.endpoints)
        self.edges.extend(result.edges)
        return True

    def remove_file(self, filepath: str) -> int:
        """Drop every entity that came from ``filepath``; returns how many were removed."""
        if not filepath:
            return 0
        kept_endpoints = [endpoint for endpoint in self.endpoints if endpoint.file != filepath]
        kept_edges = [edge for edge in self.edges if edge.file != filepath]
        removed = (len(self.endpoints) - len(kept_endpoints)) + (len(self.edges) - len(kept_edges))
        self.endpoints = kept_endpoints
        self.edges = kept_edges
        for service in self.services:
            if service.remove_file(filepath):
                removed += 1
        if removed:
            _LOGGER.debug("Removed %d entities for %s", removed, filepath)
        return removed

    def source_files(self) -> List[str]:
        """Every file that contributed a service, endpoint or edge, in first-seen order."""
        files: Dict[str, None] = {}
        for service in self.services:
            files.update(dict.fromkeys(service.files))
        files.update(dict.fromkeys(endpoint.file for endpoint in self.endpoints if endpoint.file))
        files.update(dict.fromkeys(edge.file for edge in self.edges if edge.file))
        return [path for path in files if path]

    def set_stats(self, files_analyzed: int, files_skipped: int, duration_ms: int) -> None:
        self.files_analyzed = files_analyzed
        self.files_skipped = files_skipped
        self.scan_duration_ms = duration_ms

    def _record_language(self, language: str) -> None:
        if language and language not in self.languages:
            self.languages.append(language)

    # ------------------------------------------------------------------
    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "scan_metadata": {
                "timestamp": format_timestamp(self.timestamp),
                "crawler_version": self.crawler_version,
                "scan_duration_ms": self.scan_duration_ms,
                "files_analyzed": self.files_analyzed,
                "files_skipped": self.files_skipped,
            },
            "repo": self.repo_name,
            "languages": list(self.languages),
            "services": [_service_to_dict(service) for service in self.services],
            "endpoints": [_endpoint_to_dict(endpoint) for endpoint in self.endpoints],
            "edges": [_edge_to_dict(edge) for edge in self.edges],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def write_json(self, path: Path | str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json() + "\n", encoding="utf-8")
        _LOGGER.info("Manifest written to %s", target)

    @classmethod
    def load_json(cls, path: Path | str) -> Optional["Manifest"]:
        """Read a manifest written by :meth:`write_json`; None when missing or unreadable."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            _LOGGER.warning("Ignoring unreadable manifest %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        metadata = data.get("scan_metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        manifest = cls(repo_name=_as_str(data.get("repo")))
        manifest.schema_version = _as_str(data.get("schema_version"), SCHEMA_VERSION)
        manifest.crawler_version = _as_str(metadata.get("crawler_version"), CRAWLER_VERSION)
        timestamp = _parse_timestamp(metadata.get("timestamp"))
        if timestamp is not None:
            manifest.timestamp = timestamp
        manifest.scan_duration_ms = _as_int(metadata.get("scan_duration_ms"))
        manifest.files_analyzed = _as_int(metadata.get("files_analyzed"))
        manifest.files_skipped = _as_int(metadata.get("files_skipped"))

        languages = data.get("languages")
        if isinstance(languages, list):
            for language in languages:
                if isinstance(language, str):
                    manifest._record_language(language)

        for raw in _as_list(data.get("services")):
            service = _service_from_dict(raw)
            if service is not None and manifest.find_service(service.name) is None:
                manifest.services.append(service)
        for raw in _as_list(data.get("endpoints")):
            endpoint = _endpoint_from_dict(raw)
            if endpoint is not None:
                manifest.endpoints.append(endpoint)
        for raw in _as_list(data.get("edges")):
            edge = _edge_from_dict(raw)
            if edge is not None:
                manifest.edges.append(edge)
        return manifest


def _service_to_dict(service: Service) -> Dict[str, Any]:
    return {
        "name": service.name,
        "language": service.language,
        "path": service.path,
        "file_count": service.file_count,
        "files": list(service.files),
    }


def _endpoint_to_dict(endpoint: Endpoint) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "service": endpoint.service,
        "path": endpoint.path,
        "method": endpoint.method.value,
    }
    if endpoint.handler:
        data["handler"] = endpoint.handler
    if endpoint.file:
        data["file"] = endpoint.file
        data["line"] = endpoint.line
    return data


def _edge_to_dict(edge: Edge) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "from": edge.from_service,
        "to": edge.to_service,
        "type": edge.type.value,
    }
    if edge.method:
        data["method"] = edge.method
    if edge.endpoint:
        data["endpoint"] = edge.endpoint
    if edge.file:
        data["file"] = edge.file
        data["line"] = edge.line
    data["confidence"] = edge.confidence
    return data


def _service_from_dict(payload: object) -> Optional[Service]:
    if not isinstance(payload, dict):
        return None
    name = payload.get("name")
    if not isinstance(name, str) or not name:
        return None
    service = Service(
        name=name,
        language=_as_str(payload.get("language")),
        path=_as_str(payload.get("path")),
    )
    for filepath in _as_list(payload.get("files")):
        if isinstance(filepath, str):
            service.add_file(filepath)
    return service


def _endpoint_from_dict(payload: object) -> Optional[Endpoint]:
    if not isinstance(payload, dict):
        return None
    service = payload.get("service")
    path = payload.get("path")
    if not isinstance(service, str) or not isinstance(path, str):
        return None
    handler = payload.get("handler")
    filepath = payload.get("file")
    return Endpoint(
        service=service,
        path=path,
        method=HttpMethod.from_string(_as_str(payload.get("method"))),
        handler=handler if isinstance(handler, str) else None,
        file=filepath if isinstance(filepath, str) else None,
        line=_as_int(payload.get("line")),
    )


def _edge_from_dict(payload: object) -> Optional[Edge]:
    if not isinstance(payload, dict):
        return None
    source = payload.get("from")
    target = payload.get("to")
    if not isinstance(source, str) or not isinstance(target, str):
        return None
    method = payload.get("method")
    endpoint = payload.get("endpoint")
    filepath = payload.get("file")
    confidence = payload.get("confidence", 1.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 1.0
    return Edge(
        from_service=source,
        to_service=target,
        type=EdgeType.from_string(_as_str(payload.get("type"))),
        method=method if isinstance(method, str) else None,
        endpoint=endpoint if isinstance(endpoint, str) else None,
        file=filepath if isinstance(filepath, str) else None,
        line=_as_int(payload.get("line")),
        confidence=float(confidence),
    )


def _as_str(value: object, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _as_list(value: object) -> List[Any]:
    return value if isinstance(value, list) else []


__all__ = ["CRAWLER_VERSION", "Manifest", "SCHEMA_VERSION", "format_timestamp"]
