"""Incremental scan pipeline: walk, detect changes, parse, merge, persist."""

from __future__ import annotations

import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Set, Tuple

from .config import DEFAULT_OUTPUT, BrightpandaConfig, load_config
from .logging import get_logger
from .manifest import Manifest
from .models import ParseResult
from .plugins import LanguagePlugin, PluginRegistry, build_registry, discover_plugins
from .plugins.parser_pool import DEFAULT_MAX_PARSERS
from .stores import CacheStats, ChangeCache
from .walker import Walker, WalkerConfig, WalkerStats


@dataclass
class ScanReport:
    """Outcome of a single :meth:`ScanSession.run`."""

    manifest: Manifest
    output_path: Path
    files_analyzed: int
    files_skipped: int
    files_failed: int
    files_removed: int
    walker_stats: WalkerStats
    cache_stats: Optional[CacheStats]
    duration_ms: int


class ScanSession:
    """Owns the registry, cache, walker and manifest for one repository scan."""

    def __init__(
        self,
        root: Path | str,
        config: BrightpandaConfig | None = None,
        *,
        registry: PluginRegistry | None = None,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.config = config or load_config(self.root)
        self.logger = get_logger("orchestrator")
        self.registry = registry or self._build_registry()

        cache_settings = self.config.cache
        self.cache = ChangeCache(
            cache_settings.path if cache_settings.enabled else None,
            max_entries=cache_settings.max_entries,
            max_bytes=cache_settings.max_bytes,
        )

        walker_settings = self.config.walker
        self.walker = Walker(
            WalkerConfig(
                follow_symlinks=walker_settings.follow_symlinks,
                respect_gitignore=walker_settings.respect_gitignore,
                max_depth=walker_settings.max_depth,
                extensions=list(walker_settings.extensions or self.registry.extensions()),
                exclude_paths=list(walker_settings.exclude_paths),
            )
        )
        self.manifest = Manifest(repo_name=self.root.name)

    @property
    def output_path(self) -> Path:
        return self.config.output or self.root / DEFAULT_OUTPUT

    @property
    def cache_enabled(self) -> bool:
        return self.config.cache.enabled and self.cache.path is not None

    def run(self) -> ScanReport:
        """Scan the repository and write the manifest.

        Raises ``FileNotFoundError`` / ``NotADirectoryError`` when the root is
        unusable; per-file failures are logged and counted instead.
        """
        start = time.monotonic()
        self.logger.info("Scanning %s", self.root)

        previous: Optional[Manifest] = None
        if self.cache_enabled:
            if not self.cache.load():
                self.logger.warning("Cache could not be loaded; continuing with an empty cache")
            if self.config.scan.incremental:
                previous = Manifest.load_json(self.output_path)
        if previous is not None:
            self.logger.debug("Loaded previous manifest from %s", self.output_path)
            previous.repo_name = self.root.name
            self.manifest = previous
        else:
            self.manifest = Manifest(repo_name=self.root.name)

        analyzed = 0
        skipped = 0
        failed = 0
        seen: Set[str] = set()
        pending: List[Tuple[str, LanguagePlugin]] = []

        for path in self.walker.iter_files(str(self.root)):
            seen.add(path)
            plugin = self.registry.for_file(path)
            if plugin is None:
                self.logger.debug("No plugin for %s", path)
                skipped += 1
                continue
            if self.cache_enabled and not self.cache.is_changed(path) and previous is not None:
                self.logger.debug("Skipping unchanged file: %s", path)
                skipped += 1
                continue
            pending.append((path, plugin))

        for path, result in self._parse_all(pending):
            self.manifest.remove_file(path)
            if not result.success:
                self.logger.warning("Failed to parse %s: %s", path, result.error)
                if self.cache_enabled:
                    self.cache.remove(path)
                failed += 1
                skipped += 1
                continue
            self.manifest.merge_parse_result(result)
            analyzed += 1
            if self.cache_enabled:
                self.cache.update(path)

        removed = self._forget_deleted(seen)

        duration_ms = int((time.monotonic() - start) * 1000)
        self.manifest.timestamp = time.time()
        self.manifest.set_stats(analyzed, skipped, duration_ms)
        self.manifest.write_json(self.output_path)

        cache_stats: Optional[CacheStats] = None
        if self.cache_enabled:
            if not self.cache.save():
                self.logger.warning("Failed to save cache to %s", self.cache.path)
            cache_stats = self.cache.stats()

        self.logger.info(
            "Scan complete: %d analyzed, %d skipped, %d removed in %d ms",
            analyzed,
            skipped,
            removed,
            duration_ms,
        )
        return ScanReport(
            manifest=self.manifest,
            output_path=self.output_path,
            files_analyzed=analyzed,
            files_skipped=skipped,
            files_failed=failed,
            files_removed=removed,
            walker_stats=self.walker.get_stats(),
            cache_stats=cache_stats,
            duration_ms=duration_ms,
        )

    def close(self) -> None:
        self.registry.shutdown()

    def __enter__(self) -> "ScanSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers

    def _build_registry(self) -> PluginRegistry:
        settings = self.config.plugins
        plugins = discover_plugins(
            settings.enabled,
            query_dir=settings.query_dir,
            http_call_confidence=settings.http_call_confidence,
            max_parsers=settings.max_parsers,
        )
        return build_registry(plugins)

    def _effective_workers(self, pending: int) -> int:
        pool_size = self.config.plugins.max_parsers or DEFAULT_MAX_PARSERS
        return max(1, min(self.config.scan.workers, pool_size, pending))

    def _parse_all(
        self, pending: Sequence[Tuple[str, LanguagePlugin]]
    ) -> Iterator[Tuple[str, ParseResult]]:
        """Parse pending files, yielding results in walk order."""
        workers = self._effective_workers(len(pending))
        if workers <= 1:
            for path, plugin in pending:
                yield path, plugin.parse_file(path)
            return

        self.logger.debug("Parsing %d files with %d workers", len(pending), workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = executor.map(lambda item: item[1].parse_file(item[0]), pending)
            for (path, _), result in zip(pending, results):
                yield path, result

    def _forget_deleted(self, seen: Set[str]) -> int:
        """Drop files under the root that the walk no longer produced.

        Candidates come from the manifest's own provenance as well as the
        cache, since the cache may have evicted files whose entities remain.
        """
        prefix = str(self.root) + os.sep
        known = dict.fromkeys(self.manifest.source_files())
        if self.cache_enabled:
            known.update(dict.fromkeys(self.cache.paths()))
        removed = 0
        for path in known:
            if not path.startswith(prefix) or path in seen:
                continue
            self.logger.info("File removed since last scan: %s", path)
            self.manifest.remove_file(path)
            if self.cache_enabled:
                self.cache.remove(path)
            removed += 1
        return removed


__all__ = ["ScanReport", "ScanSession"]
