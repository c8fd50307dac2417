"""
Plugin loader for automatic discovery and registration of source adapters.
"""

import importlib.util
import inspect
import logging
import pathlib
import sys
from types import ModuleType
from typing import Dict, List, Optional, Type

from .interfaces import SourceAdapter

logger = logging.getLogger(__name__)

# Plugin directory relative to this file
PLUGIN_DIR = pathlib.Path(__file__).parent.parent / "plugins"

# Global registry of discovered adapter classes, keyed by source id
_REGISTRY: Dict[str, Type[SourceAdapter]] = {}


def _load_module(path: pathlib.Path) -> ModuleType:
    """Load a Python module from a file path."""
    # Create module name like: plugins.cs2.adapter
    plugin_name = path.parent.name
    module_name = path.stem
    full_name = f"plugins.{plugin_name}.{module_name}"

    if full_name in sys.modules:
        return sys.modules[full_name]

    spec = importlib.util.spec_from_file_location(full_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load spec for {path}")

    mod = importlib.util.module_from_spec(spec)
    sys.modules[full_name] = mod  # Allow intra-plugin imports
    try:
        spec.loader.exec_module(mod)
    except BaseException:
        del sys.modules[full_name]
        raise

    logger.debug("Loaded module: %s", full_name)
    return mod


def refresh_registry(plugin_dir: Optional[pathlib.Path] = None) -> None:
    """Scan all Python files in plugins/ and register concrete SourceAdapter subclasses."""
    plugin_dir = plugin_dir or PLUGIN_DIR
    _REGISTRY.clear()

    if not plugin_dir.exists():
        logger.warning("Plugin directory does not exist: %s", plugin_dir)
        return

    module_count = 0

    for py_file in sorted(plugin_dir.rglob("*.py")):
        # Skip __init__.py and private helpers
        if py_file.name.startswith("_"):
            continue

        try:
            mod = _load_module(py_file)
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to load module %s: %s", py_file, e)
            continue
        module_count += 1

        for _, obj in inspect.getmembers(mod, inspect.isclass):
            if (
                issubclass(obj, SourceAdapter)
                and not inspect.isabstract(obj)
                and obj.__module__ == mod.__name__
            ):
                source_id = obj.descriptor.source_id
                if source_id in _REGISTRY:
                    logger.warning(
                        "Duplicate source id %s: %s replaces %s",
                        source_id,
                        obj.__name__,
                        _REGISTRY[source_id].__name__,
                    )
                _REGISTRY[source_id] = obj
                logger.debug("Registered adapter: %s -> %s", source_id, obj.__name__)

    logger.info("Plugin discovery complete: %d modules, %d adapters", module_count, len(_REGISTRY))


def get(source_id: str) -> Type[SourceAdapter]:
    """Get an adapter class by source id.

    Raises:
        KeyError: If no adapter is registered under that id
    """
    if not _REGISTRY:
        refresh_registry()

    if source_id not in _REGISTRY:
        available = sorted(_REGISTRY)
        raise KeyError(f"Source '{source_id}' not found. Available: {available}")

    return _REGISTRY[source_id]


def list_available() -> Dict[str, Type[SourceAdapter]]:
    """Get a copy of all registered adapters."""
    if not _REGISTRY:
        refresh_registry()
    return _REGISTRY.copy()


def build_adapters(source_ids: Optional[List[str]] = None) -> List[SourceAdapter]:
    """Instantiate adapters in the requested order (all, sorted by id, when empty)."""
    available = list_available()
    ids = list(source_ids) if source_ids else sorted(available)
    return [get(source_id)() for source_id in ids]
