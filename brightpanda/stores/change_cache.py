"""Persistent change-detection cache for incremental scans.

Each entry remembers a file's modification time, size and CRC-32 fingerprint
so unchanged files can be skipped on the next run. Entries are kept in an
``OrderedDict`` whose order doubles as the LRU list: the first item is the
least recently used one, every lookup hit or update moves an entry to the end.
"""

from __future__ import annotations

import os
import struct
import threading
import time
import zlib
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional

from ..logging import get_logger

CACHE_VERSION = 1
MAX_CACHE_ENTRIES = 10_000
MAX_FILE_BYTES = 10 * 1024 * 1024
ENTRY_OVERHEAD_BYTES = 64

_HEADER = struct.Struct("<IQ")
_PATH_LEN = struct.Struct("<H")
_RECORD = struct.Struct("<qIQq")
_MAX_PATH_BYTES = 0xFFFF

_LOGGER = get_logger("cache")


@dataclass
class CacheEntry:
    """Snapshot of a file as it looked when last cached."""

    path: str
    mtime: int
    fingerprint: int
    size: int
    last_accessed: int

    @property
    def cost(self) -> int:
        return ENTRY_OVERHEAD_BYTES + len(_encode_path(self.path))


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    hits: int
    misses: int


def fingerprint_bytes(data: bytes) -> int:
    """Return the unsigned CRC-32 of ``data``."""
    return zlib.crc32(data) & 0xFFFFFFFF


class ChangeCache:
    """Tracks file metadata so unchanged files can be skipped between scans."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        max_entries: int = MAX_CACHE_ENTRIES,
        max_bytes: int = 0,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._total_bytes = 0
        self._hits = 0
        self._misses = 0
        self._max_entries = max(0, int(max_entries))
        self._max_bytes = max(0, int(max_bytes))
        self._lock = threading.RLock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------
    # Change detection

    def is_changed(self, filepath: str) -> bool:
        """Return True when ``filepath`` is unknown or differs from its cached state."""
        if not isinstance(filepath, str) or not filepath:
            return True
        try:
            stat_result = os.stat(filepath)
        except OSError:
            return True

        with self._lock:
            entry = self._entries.get(filepath)
            if entry is None:
                self._misses += 1
                _LOGGER.debug("Cache miss (new file): %s", filepath)
                return True
            if entry.mtime == int(stat_result.st_mtime) and entry.size == stat_result.st_size:
                self._hits += 1
                entry.last_accessed = int(time.time())
                self._entries.move_to_end(filepath)
                _LOGGER.debug("Cache hit: %s", filepath)
                return False
            self._misses += 1
            _LOGGER.debug("Cache miss (modified): %s", filepath)
            return True

    def update(self, filepath: str) -> bool:
        """Fingerprint ``filepath`` and store it as the most recently used entry."""
        if not isinstance(filepath, str) or not filepath:
            return False
        try:
            stat_result = os.stat(filepath)
            if stat_result.st_size > MAX_FILE_BYTES:
                _LOGGER.debug("Not caching oversized file: %s", filepath)
                return False
            with open(filepath, "rb") as handle:
                content = handle.read(MAX_FILE_BYTES + 1)
        except OSError as exc:
            _LOGGER.debug("Cannot cache %s: %s", filepath, exc)
            return False
        if len(content) > MAX_FILE_BYTES:
            return False
        if len(_encode_path(filepath)) > _MAX_PATH_BYTES:
            _LOGGER.debug("Path too long to cache: %s", filepath)
            return False

        entry = CacheEntry(
            path=filepath,
            mtime=int(stat_result.st_mtime),
            fingerprint=fingerprint_bytes(content),
            size=stat_result.st_size,
            last_accessed=int(time.time()),
        )
        with self._lock:
            self._store(entry)
            self._enforce_limits()
        return True

    def remove(self, filepath: str) -> bool:
        with self._lock:
            entry = self._entries.pop(filepath, None)
            if entry is None:
                return False
            self._total_bytes -= entry.cost
            return True

    def get(self, filepath: str) -> Optional[CacheEntry]:
        """Return the cached entry without touching its recency."""
        with self._lock:
            return self._entries.get(filepath)

    # ------------------------------------------------------------------
    # Limits and eviction

    def set_limits(self, max_entries: int, max_bytes: int) -> None:
        """Apply new bounds (0 means unlimited) and evict until both hold."""
        with self._lock:
            self._max_entries = max(0, int(max_entries))
            self._max_bytes = max(0, int(max_bytes))
            self._enforce_limits()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def _enforce_limits(self) -> None:
        while self._max_entries and len(self._entries) > self._max_entries:
            self._evict_one()
        while self._max_bytes and self._entries and self._total_bytes > self._max_bytes:
            self._evict_one()

    def _evict_one(self) -> None:
        victim_path, victim = self._entries.popitem(last=False)
        self._total_bytes -= victim.cost
        _LOGGER.debug("Evicted cache entry: %s", victim_path)

    def _store(self, entry: CacheEntry) -> None:
        previous = self._entries.pop(entry.path, None)
        if previous is not None:
            self._total_bytes -= previous.cost
        self._entries[entry.path] = entry
        self._total_bytes += entry.cost

    # ------------------------------------------------------------------
    # Persistence

    def load(self) -> bool:
        """Replace the in-memory entries with the snapshot on disk.

        A missing snapshot or a version mismatch leaves the cache empty and is
        not an error. Truncated records end the load early; records read
        before the damage are kept.
        """
        if self._path is None:
            return False
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
            try:
                with self._path.open("rb") as handle:
                    return self._read_snapshot(handle)
            except FileNotFoundError:
                _LOGGER.debug("Cache file not found, starting fresh: %s", self._path)
                return True
            except OSError as exc:
                _LOGGER.warning("Failed to read cache file %s: %s", self._path, exc)
                return False

    def _read_snapshot(self, handle: BinaryIO) -> bool:
        header = handle.read(_HEADER.size)
        if len(header) < 4:
            _LOGGER.warning("Cache file version mismatch, ignoring")
            return True
        (version,) = struct.unpack_from("<I", header)
        if version != CACHE_VERSION:
            _LOGGER.warning("Cache file version mismatch, ignoring")
            return True
        if len(header) < _HEADER.size:
            _LOGGER.error("Failed to read cache entry count")
            return False
        _, count = _HEADER.unpack(header)

        limit = self._max_entries or MAX_CACHE_ENTRIES
        loaded = 0
        while loaded < count and loaded < limit:
            entry = _read_entry(handle)
            if entry is None:
                _LOGGER.warning(
                    "Cache file truncated after %d of %d entries", loaded, count
                )
                break
            self._store(entry)
            loaded += 1
        self._enforce_limits()
        _LOGGER.info("Loaded %d cache entries from %s", len(self._entries), self._path)
        return True

    def save(self) -> bool:
        """Write every entry, least recently used first, replacing the snapshot."""
        if self._path is None:
            return False
        with self._lock:
            chunks = [_HEADER.pack(CACHE_VERSION, len(self._entries))]
            for entry in self._entries.values():
                raw_path = _encode_path(entry.path)
                chunks.append(_PATH_LEN.pack(len(raw_path)))
                chunks.append(raw_path)
                chunks.append(
                    _RECORD.pack(entry.mtime, entry.fingerprint, entry.size, entry.last_accessed)
                )
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_bytes(b"".join(chunks))
            except OSError as exc:
                _LOGGER.error("Failed to write cache file %s: %s", self._path, exc)
                return False
            _LOGGER.info("Saved %d cache entries to %s", len(self._entries), self._path)
            return True

    # ------------------------------------------------------------------
    # Introspection

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                total_bytes=self._total_bytes,
                hits=self._hits,
                misses=self._misses,
            )

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def lru_order(self) -> List[str]:
        """Return cached paths from least to most recently used."""
        return self.paths()

    def __contains__(self, filepath: object) -> bool:
        with self._lock:
            return filepath in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())


def _encode_path(path: str) -> bytes:
    return path.encode("utf-8", errors="surrogateescape")


def _read_entry(handle: BinaryIO) -> Optional[CacheEntry]:
    raw_len = handle.read(_PATH_LEN.size)
    if len(raw_len) < _PATH_LEN.size:
        return None
    (path_len,) = _PATH_LEN.unpack(raw_len)
    raw_path = handle.read(path_len)
    if len(raw_path) < path_len:
        return None
    record = handle.read(_RECORD.size)
    if len(record) < _RECORD.size:
        return None
    mtime, fingerprint, size, last_accessed = _RECORD.unpack(record)
    return CacheEntry(
        path=raw_path.decode("utf-8", errors="surrogateescape"),
        mtime=mtime,
        fingerprint=fingerprint,
        size=size,
        last_accessed=last_accessed,
    )


__all__ = [
    "CACHE_VERSION",
    "CacheEntry",
    "CacheStats",
    "ChangeCache",
    "MAX_FILE_BYTES",
    "fingerprint_bytes",
]
