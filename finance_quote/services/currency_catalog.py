"""ISO 4217 currency metadata.

The table ships with the package as ``finance_quote/data/currencies.yaml``
and is read once per process.
"""

import copy
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from finance_quote.utils.exceptions import ConfigurationError, InvalidParameterError
from finance_quote.utils.logging import get_logger
from finance_quote.utils.normalizers import smart_compare

logger = get_logger(__name__)

CURRENCY_TABLE_PATH = Path(__file__).resolve().parent.parent / 'data' / 'currencies.yaml'

_currencies: Optional[Dict[str, Dict[str, Any]]] = None
_lock = threading.Lock()


def _load_table(path: Path) -> Dict[str, Dict[str, Any]]:
    try:
        with open(path, 'r', encoding='utf-8') as file:
            data = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to load currency table from {path}: {str(e)}",
            config_file=str(path),
            original_exception=e
        )

    table = data.get('currencies')
    if not isinstance(table, dict):
        raise ConfigurationError("Currency table has no 'currencies' mapping", config_file=str(path))
    return table


def known_currencies() -> Dict[str, Dict[str, Any]]:
    """Return ISO code -> metadata for every known currency.

    Each entry carries ``name``, ``number`` (the numeric code as text),
    ``minor_unit`` and ``country`` (a list of country names). The returned
    mapping is a copy and may be modified freely.
    """
    global _currencies
    with _lock:
        if _currencies is None:
            _currencies = _load_table(CURRENCY_TABLE_PATH)
            logger.debug(f"Loaded {len(_currencies)} currencies from {CURRENCY_TABLE_PATH}")
        table = _currencies

    return copy.deepcopy(table)


def currency_lookup(**constraints: Any) -> Optional[Dict[str, Dict[str, Any]]]:
    """Find currencies whose metadata matches every constraint.

    A constraint value is either a literal, matched as a substring, or a
    compiled regular expression. List attributes such as ``country`` match
    when any element does.

    Example:
        ``currency_lookup(country=re.compile('united states', re.I))``

    Args:
        **constraints: Attribute name -> literal or compiled pattern

    Returns:
        Matching ISO code -> metadata, or None when a constraint names an
        attribute no currency has
    """
    currencies = known_currencies()

    attributes = set()
    for entry in currencies.values():
        attributes.update(entry)

    unknown = sorted(name for name in constraints if name not in attributes)
    if unknown:
        error = InvalidParameterError(
            f"Invalid currency_lookup attribute(s): {', '.join(unknown)}",
            parameter=unknown[0],
            value=constraints[unknown[0]]
        )
        logger.error(str(error))
        return None

    return {
        code: entry
        for code, entry in currencies.items()
        if all(smart_compare(entry.get(name), pattern) for name, pattern in constraints.items())
    }
