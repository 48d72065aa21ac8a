"""
File-based plugin discovery for the event and command registries.

Each `*.py` file in a plugin directory is imported under a private module
name. Files starting with an underscore are skipped.
"""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

from observability.logger import log_exception


class PluginLoadError(ImportError):
    """Raised when a plugin file cannot be imported."""


def iter_plugin_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.glob("*.py")
        if p.is_file() and not p.name.startswith("_")
    )


def load_plugin(path: Path, namespace: str) -> ModuleType:
    """Import one plugin file as `<namespace>.<stem>`."""
    module_name = f"{namespace}.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, str(path))
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"could not create import spec for {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        log_exception("PLUGIN_LOAD_FAILED", exc, path=str(path))
        raise PluginLoadError(f"failed to load {path}: {exc}") from exc
    return module
