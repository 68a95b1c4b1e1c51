"""Source adapters: one drop-in module per upstream platform."""

import importlib
import pkgutil

from studysync.sources.base import BaseSource, SourceRegistry

__all__ = ["BaseSource", "SourceRegistry", "discover"]


def discover() -> None:
    """Import every module in this package so @register decorators fire."""
    for _importer, modname, _ispkg in pkgutil.iter_modules(__path__):
        if modname == "base":
            continue
        importlib.import_module(f"{__name__}.{modname}")
