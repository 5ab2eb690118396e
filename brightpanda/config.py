"""Configuration loading for brightpanda (.brightpanda.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".brightpanda.yml"
DEFAULT_OUTPUT = "brightpanda.json"
DEFAULT_CACHE_FILE = ".brightpanda/cache.bin"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class CacheConfig:
    """Change-detection cache settings."""

    enabled: bool = True
    path: Optional[Path] = None
    max_entries: int = 10_000
    max_bytes: int = 0


@dataclass
class WalkerSettings:
    """Directory traversal settings."""

    follow_symlinks: bool = False
    respect_gitignore: bool = True
    max_depth: int = 0
    extensions: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)


@dataclass
class PluginSettings:
    """Language plugin enablement and tuning."""

    enabled: Optional[List[str]] = None
    query_dir: Optional[Path] = None
    http_call_confidence: Optional[float] = None
    max_parsers: Optional[int] = None


@dataclass
class ScanSettings:
    """Scan behaviour."""

    workers: int = 1
    incremental: bool = True


@dataclass
class BrightpandaConfig:
    """Represents the settings defined in .brightpanda.yml."""

    root: Path
    output: Optional[Path] = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    walker: WalkerSettings = field(default_factory=WalkerSettings)
    plugins: PluginSettings = field(default_factory=PluginSettings)
    scan: ScanSettings = field(default_factory=ScanSettings)

    def __post_init__(self) -> None:
        if self.output is None:
            self.output = self.root / DEFAULT_OUTPUT
        if self.cache.path is None:
            self.cache.path = self.root / DEFAULT_CACHE_FILE


def load_config(config_path: Path) -> BrightpandaConfig:
    """Load configuration from disk; a missing file yields defaults rooted at its directory."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return BrightpandaConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    output_str = _as_str(data.get("output"))
    output = root / output_str if output_str else None

    cache_data = _as_dict(data.get("cache"))
    cache = CacheConfig()
    if cache_data:
        enabled = _as_bool(cache_data.get("enabled"))
        if enabled is not None:
            cache.enabled = enabled
        cache_path = _as_str(cache_data.get("path"))
        if cache_path:
            cache.path = root / cache_path
        cache.max_entries = _non_negative(cache_data.get("max_entries"), "cache.max_entries", 10_000)
        cache.max_bytes = _non_negative(cache_data.get("max_bytes"), "cache.max_bytes", 0)

    walker_data = _as_dict(data.get("walker"))
    walker = WalkerSettings()
    if walker_data:
        walker.follow_symlinks = _as_bool(walker_data.get("follow_symlinks")) or False
        respect = _as_bool(walker_data.get("respect_gitignore"))
        if respect is not None:
            walker.respect_gitignore = respect
        walker.max_depth = _non_negative(walker_data.get("max_depth"), "walker.max_depth", 0)
        walker.extensions = [ext.lstrip(".") for ext in _as_str_list(walker_data.get("extensions"))]
        walker.exclude_paths = _as_str_list(walker_data.get("exclude_paths"))
    walker.exclude_paths.extend(_as_str_list(data.get("exclude_paths")))

    plugin_data = _as_dict(data.get("plugins"))
    plugins = PluginSettings()
    if plugin_data:
        if "enabled" in plugin_data:
            plugins.enabled = _as_str_list(plugin_data.get("enabled"))
        query_dir = _as_str(plugin_data.get("query_dir"))
        plugins.query_dir = root / query_dir if query_dir else None
        confidence = _as_float(plugin_data.get("http_call_confidence"))
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ConfigError("plugins.http_call_confidence must be between 0.0 and 1.0")
        plugins.http_call_confidence = confidence
        max_parsers = _as_int(plugin_data.get("max_parsers"))
        if max_parsers is not None and max_parsers < 1:
            raise ConfigError("plugins.max_parsers must be at least 1")
        plugins.max_parsers = max_parsers

    scan_data = _as_dict(data.get("scan"))
    scan = ScanSettings()
    if scan_data:
        workers = _as_int(scan_data.get("workers"))
        if workers is not None:
            if workers < 1:
                raise ConfigError("scan.workers must be at least 1")
            scan.workers = workers
        incremental = _as_bool(scan_data.get("incremental"))
        if incremental is not None:
            scan.incremental = incremental

    return BrightpandaConfig(
        root=root,
        output=output,
        cache=cache,
        walker=walker,
        plugins=plugins,
        scan=scan,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _non_negative(value: Any, key: str, default: int) -> int:
    number = _as_int(value)
    if number is None:
        return default
    if number < 0:
        raise ConfigError(f"{key} must not be negative")
    return number


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "BrightpandaConfig",
    "CacheConfig",
    "ConfigError",
    "PluginSettings",
    "ScanSettings",
    "WalkerSettings",
    "load_config",
]
