"""Catalog of known quote adapters.

Adapters become known either by decorating the class with
:func:`register_adapter` or by advertising it in the
``finance_quote.adapters`` entry-point group of an installed distribution.
"""

import threading
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type

from finance_quote.adapters.base_adapter import QuoteAdapter
from finance_quote.utils.logging import get_logger

logger = get_logger(__name__)

ENTRY_POINT_GROUP = 'finance_quote.adapters'

_catalog: Dict[str, Type[QuoteAdapter]] = {}
_lock = threading.Lock()
_entry_points_loaded = False


def register_adapter(adapter_class: Type[QuoteAdapter]) -> Type[QuoteAdapter]:
    """Class decorator adding an adapter to the catalog under its ``name``."""
    name = adapter_class.name or adapter_class.__name__
    with _lock:
        existing = _catalog.get(name.lower())
        if existing is not None and existing is not adapter_class:
            logger.warning(f"Adapter '{name}' re-registered: {existing.__name__} replaced by {adapter_class.__name__}")
        _catalog[name.lower()] = adapter_class
    logger.debug(f"Registered adapter '{name}'")
    return adapter_class


def unregister_adapter(name: str) -> None:
    with _lock:
        _catalog.pop(name.lower(), None)


def _load_entry_points() -> None:
    global _entry_points_loaded
    if _entry_points_loaded:
        return
    _entry_points_loaded = True

    for entry_point in entry_points(group=ENTRY_POINT_GROUP):
        try:
            adapter_class = entry_point.load()
        except Exception as e:
            # Plugins that fail to load are skipped
            logger.error(f"Failed to load adapter entry point '{entry_point.name}': {str(e)}")
            continue

        if not (isinstance(adapter_class, type) and issubclass(adapter_class, QuoteAdapter)):
            logger.error(f"Entry point '{entry_point.name}' does not refer to a QuoteAdapter subclass")
            continue

        if not adapter_class.name:
            adapter_class.name = entry_point.name
        register_adapter(adapter_class)


def get_adapter_class(name: str) -> Optional[Type[QuoteAdapter]]:
    """Look up an adapter class by name (case-insensitive)."""
    _load_entry_points()
    return _catalog.get(name.lower())


def available_adapters() -> List[str]:
    """Names of every catalogued adapter, in registration order.

    This is the default module list of a quoter.
    """
    _load_entry_points()
    return [adapter_class.name or adapter_class.__name__ for adapter_class in _catalog.values()]
