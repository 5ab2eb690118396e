"""Bounded pool of reusable tree-sitter parsers for one grammar."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from tree_sitter import Language, Parser

from ..logging import get_logger

DEFAULT_INITIAL_PARSERS = 2
DEFAULT_MAX_PARSERS = 8

_LOGGER = get_logger("parser_pool")


class ParserPool:
    """Hands out parsers for a single language, growing lazily up to a hard cap.

    Acquisition never blocks: when every parser is checked out and the cap is
    reached, :meth:`acquire` returns ``None``.
    """

    def __init__(
        self,
        language: Language,
        *,
        name: str = "",
        initial: int = DEFAULT_INITIAL_PARSERS,
        max_parsers: int = DEFAULT_MAX_PARSERS,
    ) -> None:
        if max_parsers < 1:
            raise ValueError("max_parsers must be at least 1")
        self.language = language
        self.name = name
        self.max_parsers = max_parsers
        self._parsers: List[Parser] = []
        self._in_use: List[bool] = []
        self._lock = threading.Lock()
        for _ in range(min(initial, max_parsers)):
            self._parsers.append(Parser(language))
            self._in_use.append(False)
        _LOGGER.debug(
            "Parser pool %s initialized with %d parsers", name or "<anonymous>", len(self._parsers)
        )

    def acquire(self) -> Optional[Parser]:
        with self._lock:
            for index, busy in enumerate(self._in_use):
                if not busy:
                    self._in_use[index] = True
                    _LOGGER.debug("Acquired parser %d from pool %s", index, self.name)
                    return self._parsers[index]

            if len(self._parsers) < self.max_parsers:
                parser = Parser(self.language)
                self._parsers.append(parser)
                self._in_use.append(True)
                _LOGGER.debug(
                    "Created parser %d (pool %s size: %d)",
                    len(self._parsers) - 1,
                    self.name,
                    len(self._parsers),
                )
                return parser

        _LOGGER.warning("Parser pool %s exhausted", self.name)
        return None

    def release(self, parser: Optional[Parser]) -> bool:
        if parser is None:
            return False
        with self._lock:
            for index, candidate in enumerate(self._parsers):
                if candidate is parser:
                    self._in_use[index] = False
                    return True
        _LOGGER.warning("Released parser not from pool %s", self.name)
        return False

    @contextmanager
    def borrowed(self) -> Iterator[Optional[Parser]]:
        """Context manager around acquire/release; yields ``None`` when exhausted."""
        parser = self.acquire()
        try:
            yield parser
        finally:
            if parser is not None:
                self.release(parser)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._parsers)

    @property
    def in_use(self) -> int:
        with self._lock:
            return sum(1 for busy in self._in_use if busy)

    def shutdown(self) -> None:
        with self._lock:
            self._parsers.clear()
            self._in_use.clear()


__all__ = ["DEFAULT_MAX_PARSERS", "ParserPool"]
