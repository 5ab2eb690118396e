"""Directory walking for repository scans."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from .logging import get_logger

BUILTIN_IGNORE_PATTERNS: tuple[str, ...] = (
    ".git",
    ".svn",
    ".hg",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".idea",
    ".brightpanda",
    "venv",
    ".venv",
    "env",
    ".env",
    "build",
    "dist",
    ".DS_Store",
    "*.pyc",
    "*.pyo",
    "*.pyd",
    "*.so",
    "*.dylib",
)

_LOGGER = get_logger("walker")


@dataclass
class WalkerConfig:
    """Controls which entries a walk visits."""

    follow_symlinks: bool = False
    respect_gitignore: bool = True
    max_depth: int = 0
    extensions: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)


@dataclass
class WalkerStats:
    """Counters collected during the most recent walk."""

    directories_visited: int = 0
    files_scanned: int = 0
    files_matched: int = 0
    files_ignored: int = 0
    errors: int = 0


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            if self.directory_only and rel_path.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in rel_path.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def _build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(path: Path) -> List[IgnoreRule]:
    """Return the rules of a .gitignore file, or an empty list when it is missing."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []

    rules: List[IgnoreRule] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _check_root(root: Path) -> None:
    if not root.exists():
        raise FileNotFoundError(f"Path does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {root}")


def matches_ignore_pattern(name: str, patterns: Sequence[str]) -> bool:
    """Return True when ``name`` matches any glob pattern (anchored, case-sensitive)."""
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def file_extension(path: str) -> Optional[str]:
    """Return the text after the last dot of the file name, if any."""
    name = os.path.basename(path)
    if "." not in name:
        return None
    return name.rsplit(".", 1)[1]


class Walker:
    """Recursively enumerates candidate source files under a root directory."""

    def __init__(self, config: WalkerConfig | None = None) -> None:
        self.config = config or WalkerConfig()
        self.stats = WalkerStats()
        self._patterns = BUILTIN_IGNORE_PATTERNS + tuple(self.config.exclude_paths)
        self._extensions = {ext.lstrip(".") for ext in self.config.extensions if ext.lstrip(".")}

    def walk(self, root: str, visit_file: Callable[[str], None]) -> bool:
        """Call ``visit_file`` for every matching file; False when the root is unusable."""
        if not root or visit_file is None:
            return False
        try:
            _check_root(Path(root))
        except (FileNotFoundError, NotADirectoryError) as exc:
            self.stats = WalkerStats()
            _LOGGER.error("%s", exc)
            return False
        for path in self.iter_files(root):
            visit_file(path)
        return True

    def iter_files(self, root: str) -> Iterator[str]:
        """Yield matching file paths lazily; statistics are reset when iteration starts."""
        self.stats = WalkerStats()
        root_path = Path(root)
        _check_root(root_path)

        rules: List[IgnoreRule] = []
        if self.config.respect_gitignore:
            rules = parse_gitignore(root_path / ".gitignore")

        _LOGGER.info("Walking directory: %s", root)
        yield from self._walk_directory(str(root), "", 0, rules)
        _LOGGER.info(
            "Walk complete: %d files scanned, %d matched, %d ignored",
            self.stats.files_scanned,
            self.stats.files_matched,
            self.stats.files_ignored,
        )

    def get_stats(self) -> WalkerStats:
        return replace(self.stats)

    def _walk_directory(
        self, dirpath: str, rel_dir: str, depth: int, rules: Sequence[IgnoreRule]
    ) -> Iterator[str]:
        if self.config.max_depth > 0 and depth >= self.config.max_depth:
            return
        try:
            with os.scandir(dirpath) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as exc:
            _LOGGER.warning("Failed to open directory %s: %s", dirpath, exc)
            self.stats.errors += 1
            return

        self.stats.directories_visited += 1

        for entry in entries:
            if matches_ignore_pattern(entry.name, self._patterns):
                _LOGGER.debug("Ignoring: %s", entry.name)
                self.stats.files_ignored += 1
                continue

            full_path = os.path.join(dirpath, entry.name)
            rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            try:
                is_symlink = entry.is_symlink()
                if is_symlink:
                    if not self.config.follow_symlinks:
                        continue
                    is_dir = entry.is_dir(follow_symlinks=True)
                    is_file = not is_dir and entry.is_file(follow_symlinks=True)
                else:
                    is_dir = entry.is_dir(follow_symlinks=False)
                    is_file = not is_dir and entry.is_file(follow_symlinks=False)
            except OSError as exc:
                _LOGGER.debug("Failed to stat %s: %s", full_path, exc)
                self.stats.errors += 1
                continue

            if rules and _should_ignore(rel_path, is_dir, rules):
                self.stats.files_ignored += 1
                continue

            if is_dir:
                yield from self._walk_directory(full_path, rel_path, depth + 1, rules)
            elif is_file:
                self.stats.files_scanned += 1
                if self._matches_extensions(entry.name):
                    self.stats.files_matched += 1
                    _LOGGER.debug("Found file: %s", full_path)
                    yield full_path

    def _matches_extensions(self, filename: str) -> bool:
        if not self._extensions:
            return True
        ext = file_extension(filename)
        return ext is not None and ext in self._extensions


__all__ = [
    "BUILTIN_IGNORE_PATTERNS",
    "IgnoreRule",
    "Walker",
    "WalkerConfig",
    "WalkerStats",
    "file_extension",
    "matches_ignore_pattern",
    "parse_gitignore",
]
