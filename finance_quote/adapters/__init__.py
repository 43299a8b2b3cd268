"""Quote source adapters.

This package defines the contract every quote source implements and the
catalog through which the quoter finds them by name.
"""

from .base_adapter import QuoteAdapter, QuoteMethod
from .catalog import register_adapter, unregister_adapter, get_adapter_class, available_adapters
from .config import AdapterConfig
from .utils import HTTPClient, RateLimiter, normalize_symbol

__all__ = [
    'QuoteAdapter',
    'QuoteMethod',
    'register_adapter',
    'unregister_adapter',
    'get_adapter_class',
    'available_adapters',
    'AdapterConfig',
    'HTTPClient',
    'RateLimiter',
    'normalize_symbol'
]
