"""Plugin discovery, registration and event dispatch.

Plugins come from two places:

- the ``writepipe.plugins`` entry-point group of installed distributions;
- single-file modules in a local directory (``settings.plugins_dir``).

A plugin may listen to ``post_execute`` and may contribute named hook
operations through ``register_hook_operations``. Operations are owned by
the plugin that registered them and go away when it is unregistered.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from types import ModuleType
from typing import Any

import pluggy

from writepipe.commands.hooks import register_hook_operation, unregister_hook_operation
from writepipe.plugins.hookspecs import WritepipeHookSpec

PROJECT_NAME = "writepipe"
ENTRY_POINT_GROUP = "writepipe.plugins"
LOCAL_MODULE_PREFIX = "writepipe_local_plugin_"

logger = logging.getLogger(__name__)


class PluginManager:
    """Loads plugins and routes writepipe events to them."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(WritepipeHookSpec)
        self._operations: dict[str, list[str]] = {}
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then local ones; return all plugin names."""
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        if local_dir is not None:
            self._discover_local(local_dir)

        for plugin in self._pm.get_plugins():
            name = self._plugin_name(plugin)
            if name not in self._operations:
                self._register_plugin_operations(plugin, name)

        self._loaded = True
        names = self.list_plugin_names()
        logger.debug("Plugins loaded: %s", names)
        return names

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance and the hook operations it provides."""
        resolved = name or type(plugin).__name__
        self._pm.register(plugin, name=resolved)
        self._register_plugin_operations(plugin, resolved)
        logger.debug("Registered plugin %s", resolved)

    def unregister(self, plugin: object) -> None:
        """Remove *plugin* along with the hook operations it registered."""
        name = self._plugin_name(plugin)
        self._pm.unregister(plugin)
        for operation in self._operations.pop(name, []):
            unregister_hook_operation(operation)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        """Whether :meth:`discover_and_load` has run."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def get_plugins(self) -> list[object]:
        return list(self._pm.get_plugins())

    def list_plugin_names(self) -> list[str]:
        return [self._plugin_name(plugin) for plugin in self._pm.get_plugins()]

    def operations_for(self, name: str) -> list[str]:
        """Hook operation names contributed by the plugin registered as *name*."""
        return list(self._operations.get(name, []))

    def _plugin_name(self, plugin: object) -> str:
        return self._pm.get_name(plugin) or type(plugin).__name__

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def dispatch(self, hook_name: str, **payload: Any) -> bool:
        """Fire *hook_name* with keyword *payload* on every plugin.

        Returns False, after logging a warning, if a plugin raised.
        """
        try:
            getattr(self._pm.hook, hook_name)(**payload)
        except Exception:
            logger.warning("Plugin hook %s failed", hook_name, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Hook operations
    # ------------------------------------------------------------------

    def _register_plugin_operations(self, plugin: object, plugin_name: str) -> None:
        provider = getattr(plugin, "register_hook_operations", None)
        if provider is None:
            return

        try:
            operations = provider()
        except Exception:
            logger.warning(
                "Failed to collect hook operations from plugin %s", plugin_name, exc_info=True
            )
            return
        if operations is None:
            return
        if not isinstance(operations, dict):
            logger.warning("Plugin %s returned non-dict hook operations", plugin_name)
            return

        owned = self._operations.setdefault(plugin_name, [])
        for name, func in operations.items():
            try:
                register_hook_operation(name, func)
            except (TypeError, ValueError):
                logger.warning(
                    "Skipping hook operation %r from plugin %s", name, plugin_name, exc_info=True
                )
                continue
            owned.append(name.strip())

    # ------------------------------------------------------------------
    # Entry points and local modules
    # ------------------------------------------------------------------

    def _normalize_plugin_instances(self) -> None:
        """Swap plugin classes registered by entry points for instances.

        Hooks on an unbound class would be called without ``self``.
        """
        for plugin in self.get_plugins():
            if not (inspect.isclass(plugin) and self._has_hook_impls(plugin)):
                continue
            name = self._plugin_name(plugin)
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning("Failed to instantiate entry-point plugin %s", name, exc_info=True)
                continue
            self._pm.register(instance, name=name)

    def _discover_local(self, local_dir: Path) -> None:
        """Register hookimpl classes found in ``*.py`` files of *local_dir*.

        Files starting with ``_`` are helpers and are skipped.
        """
        if not local_dir.is_dir():
            return

        for path in sorted(local_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            module = self._load_module(path)
            if module is None:
                continue
            for plugin_cls in self._plugin_classes(module):
                try:
                    self._pm.register(plugin_cls(), name=module.__name__)
                except Exception:
                    logger.warning(
                        "Failed to register plugin %s from %s",
                        plugin_cls.__name__,
                        path,
                        exc_info=True,
                    )
                    continue
                logger.debug("Loaded local plugin %s from %s", plugin_cls.__name__, path)

    @staticmethod
    def _load_module(path: Path) -> ModuleType | None:
        module_name = f"{LOCAL_MODULE_PREFIX}{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            logger.warning("Could not create module spec for %s", path)
            return None

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            logger.warning("Failed to load local plugin %s", path, exc_info=True)
            sys.modules.pop(module_name, None)
            return None
        return module

    @classmethod
    def _plugin_classes(cls, module: ModuleType) -> Iterator[type]:
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ == module.__name__ and cls._has_hook_impls(obj):
                yield obj

    @staticmethod
    def _has_hook_impls(plugin_cls: type) -> bool:
        """Whether *plugin_cls* defines any ``@hookimpl`` method."""
        return any(
            getattr(getattr(plugin_cls, attr, None), f"{PROJECT_NAME}_impl", None)
            for attr in dir(plugin_cls)
            if not attr.startswith("_")
        )
