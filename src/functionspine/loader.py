"""
Function source loading.

The source is either a Python file (``./main.py``) or a dotted module
name (``myapp.functions``). Loading it runs its decorators, which
register functions into the default registry.
"""

from __future__ import annotations

import importlib
import importlib.util
import sys
from pathlib import Path
from types import ModuleType

from functionspine.errors import SourceLoadError
from functionspine.logging import get_logger

logger = get_logger(__name__)

SOURCE_MODULE_NAME = "_functionspine_source"


def _looks_like_path(source: str) -> bool:
    return source.endswith(".py") or "/" in source or "\\" in source


def load_source(source: str) -> ModuleType:
    """Import the function source.

    Raises:
        SourceLoadError: If the file is missing or the import fails
    """
    if not _looks_like_path(source):
        try:
            module = importlib.import_module(source)
        except Exception as exc:
            raise SourceLoadError(f"Cannot import function module {source!r}: {exc}", cause=exc) from exc
        logger.debug("source_loaded", source=source)
        return module

    path = Path(source).resolve()
    if not path.is_file():
        raise SourceLoadError(f"Function source not found: {source}")

    spec = importlib.util.spec_from_file_location(SOURCE_MODULE_NAME, path)
    if spec is None or spec.loader is None:
        raise SourceLoadError(f"Cannot load module from: {source}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[SOURCE_MODULE_NAME] = module
    # Sibling imports from the function directory
    if str(path.parent) not in sys.path:
        sys.path.insert(0, str(path.parent))

    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(SOURCE_MODULE_NAME, None)
        raise SourceLoadError(f"Error loading {source}: {exc}", cause=exc) from exc

    logger.debug("source_loaded", source=str(path))
    return module


__all__ = ["load_source", "SOURCE_MODULE_NAME"]
