"""Core entity models shared across brightpanda components."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class HttpMethod(str, Enum):
    """HTTP verbs recognised on endpoints."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "HttpMethod":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


class EdgeType(str, Enum):
    """Kinds of dependency edges between services."""

    HTTP_CALL = "HTTP_CALL"
    IMPORT = "IMPORT"
    RPC = "RPC"
    DATABASE = "DATABASE"
    MESSAGE_QUEUE = "MESSAGE_QUEUE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "EdgeType":
        if not value:
            return cls.UNKNOWN
        key = value.strip().upper().replace("-", "_")
        return _EDGE_TYPE_ALIASES.get(key, cls.UNKNOWN)


_EDGE_TYPE_ALIASES = {
    "HTTP": EdgeType.HTTP_CALL,
    "HTTP_CALL": EdgeType.HTTP_CALL,
    "IMPORT": EdgeType.IMPORT,
    "RPC": EdgeType.RPC,
    "DATABASE": EdgeType.DATABASE,
    "DB": EdgeType.DATABASE,
    "MESSAGE_QUEUE": EdgeType.MESSAGE_QUEUE,
    "MQ": EdgeType.MESSAGE_QUEUE,
}


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into the closed interval [0.0, 1.0]."""
    if math.isnan(value):
        return 0.0
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return float(value)


@dataclass
class Service:
    """A deployable unit that owns a set of source files."""

    name: str
    language: str
    path: str
    files: List[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def add_file(self, filepath: str) -> bool:
        """Record ``filepath`` as owned; returns False when already present."""
        if not filepath or filepath in self.files:
            return False
        self.files.append(filepath)
        return True

    def remove_file(self, filepath: str) -> bool:
        if filepath not in self.files:
            return False
        self.files.remove(filepath)
        return True


@dataclass(frozen=True)
class Endpoint:
    """An HTTP handler registered by a service."""

    service: str
    path: str
    method: HttpMethod = HttpMethod.GET
    handler: Optional[str] = None
    file: Optional[str] = None
    line: int = 0


@dataclass
class Edge:
    """A directed dependency from one service to another target."""

    from_service: str
    to_service: str
    type: EdgeType = EdgeType.UNKNOWN
    method: Optional[str] = None
    endpoint: Optional[str] = None
    file: Optional[str] = None
    line: int = 0
    confidence: float = 1.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    def set_confidence(self, confidence: float) -> None:
        self.confidence = clamp_confidence(confidence)


@dataclass
class ParseResult:
    """Entities extracted from a single source file."""

    success: bool = False
    service: Optional[Service] = None
    endpoints: List[Endpoint] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    imports: List[str] = field(default_factory=list)
    error: Optional[str] = None
    syntax_errors: bool = False

    @classmethod
    def failed(cls, error: str) -> "ParseResult":
        return cls(success=False, error=error)


__all__ = [
    "Edge",
    "EdgeType",
    "Endpoint",
    "HttpMethod",
    "ParseResult",
    "Service",
    "clamp_confidence",
]
