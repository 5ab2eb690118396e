"""Language plugin implementations, registry and discovery utilities."""

from __future__ import annotations

import threading
from importlib import metadata
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set

from ..logging import get_logger
from .base import LanguagePlugin, TreeSitterPlugin
from .javascript import JavaScriptPlugin
from .python import PythonPlugin

_ENTRY_POINT_GROUP = "brightpanda.plugins"

_BUILTIN_FACTORIES: dict[str, Callable[..., LanguagePlugin]] = {
    "python": PythonPlugin,
    "javascript": JavaScriptPlugin,
}

_LOGGER = get_logger("plugins")


class PluginRegistry:
    """Name-keyed collection of initialised language plugins.

    Lookup by file walks plugins in registration order, so the first plugin
    claiming an extension wins.
    """

    def __init__(self) -> None:
        self._plugins: List[LanguagePlugin] = []
        self._lock = threading.Lock()

    def register(self, plugin: LanguagePlugin) -> bool:
        if not isinstance(plugin, LanguagePlugin) or not plugin.name:
            return False
        with self._lock:
            if any(existing.name.lower() == plugin.name.lower() for existing in self._plugins):
                _LOGGER.warning("Plugin already registered: %s", plugin.name)
                return False
            if not plugin.init():
                _LOGGER.error("Failed to initialize plugin: %s", plugin.name)
                return False
            self._plugins.append(plugin)
        _LOGGER.info("Registered plugin: %s v%s", plugin.name, plugin.version)
        return True

    def get(self, name: str) -> Optional[LanguagePlugin]:
        if not name:
            return None
        key = name.lower()
        with self._lock:
            for plugin in self._plugins:
                if plugin.name.lower() == key:
                    return plugin
        return None

    def for_file(self, filepath: str) -> Optional[LanguagePlugin]:
        if not filepath:
            return None
        with self._lock:
            for plugin in self._plugins:
                if plugin.supports_file(filepath):
                    return plugin
        return None

    def list(self) -> List[LanguagePlugin]:
        with self._lock:
            return list(self._plugins)

    def extensions(self) -> List[str]:
        """Union of the extensions claimed by registered plugins, in registration order."""
        seen: List[str] = []
        for plugin in self.list():
            for ext in plugin.extensions:
                if ext not in seen:
                    seen.append(ext)
        return seen

    def shutdown(self) -> None:
        with self._lock:
            plugins = list(self._plugins)
            self._plugins.clear()
        for plugin in plugins:
            plugin.shutdown()

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)


def discover_plugins(
    enabled: Sequence[str] | None = None,
    **options: Any,
) -> List[LanguagePlugin]:
    """Return instantiated plugins, honoring optional enabled names.

    ``options`` (query_dir, http_call_confidence, max_parsers) are passed to
    the built-in tree-sitter plugins; entry-point plugins are built with no
    arguments.
    """

    enabled_set: Set[str] | None = None
    if enabled is not None:
        enabled_set = {name.lower() for name in enabled}

    plugins: List[LanguagePlugin] = []
    seen: Set[str] = set()

    def _add(name: str, factory: Callable[[], LanguagePlugin]) -> None:
        nonlocal enabled_set
        key = name.lower()
        if enabled_set is not None and key not in enabled_set:
            return
        if key in seen:
            return
        instance = factory()
        if not isinstance(instance, LanguagePlugin):
            raise TypeError(f"Plugin factory for '{name}' did not return a LanguagePlugin instance")
        plugins.append(instance)
        seen.add(key)
        if enabled_set is not None:
            enabled_set.discard(key)

    builtin_options = {key: value for key, value in options.items() if value is not None}
    for name, builtin in _BUILTIN_FACTORIES.items():

        def _builtin(cls: Callable[..., LanguagePlugin] = builtin) -> LanguagePlugin:
            return cls(**builtin_options)

        _add(name, _builtin)

    for entry in _iter_entry_points():
        name = entry.name
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - defensive guard
            raise RuntimeError(f"Failed to load plugin entry point '{name}': {exc}") from exc

        def _factory(obj: object = loaded) -> LanguagePlugin:
            return _coerce_plugin(obj)

        _add(name, _factory)

    if enabled_set:
        missing = ", ".join(sorted(enabled_set))
        raise ValueError(f"Unknown plugins requested: {missing}")

    return plugins


def build_registry(plugins: Iterable[LanguagePlugin]) -> PluginRegistry:
    registry = PluginRegistry()
    for plugin in plugins:
        registry.register(plugin)
    return registry


def _coerce_plugin(obj: object) -> LanguagePlugin:
    if isinstance(obj, LanguagePlugin):
        return obj
    if isinstance(obj, type) and issubclass(obj, LanguagePlugin):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, LanguagePlugin):
            return instance
    raise TypeError("Plugin entry point must be a LanguagePlugin subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "JavaScriptPlugin",
    "LanguagePlugin",
    "PluginRegistry",
    "PythonPlugin",
    "TreeSitterPlugin",
    "build_registry",
    "discover_plugins",
]

