"""Per-module configuration for quote adapters and remote services.

Credentials and settings for one module (an API key for a rate source, a
custom endpoint for an adapter) are held in an :class:`AdapterConfig`.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from finance_quote.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AdapterConfig:
    """Configuration for a single adapter or remote service."""

    name: str
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    rate_limit: Optional[float] = None  # Requests per second, 0 disables limiting
    credentials: Dict[str, str] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, name: str, data: Optional[Mapping[str, Any]]) -> 'AdapterConfig':
        """Build a config from a user supplied block such as ``{'API_KEY': '...'}``.

        Keys are matched case-insensitively. ``timeout``, ``max_retries`` and
        ``rate_limit`` are lifted into fields; ``api_key``/``token`` style keys
        become credentials and everything else a setting.
        """
        config = cls(name=name)
        for key, value in (data or {}).items():
            lowered = str(key).lower()
            if lowered in ('timeout', 'max_retries', 'rate_limit'):
                setattr(config, lowered, value)
            elif lowered in ('api_key', 'apikey', 'token', 'password', 'username'):
                config.credentials['api_key' if lowered == 'apikey' else lowered] = value
            else:
                config.settings[lowered] = value
        return config

    def get_credential(self, key: str) -> Optional[str]:
        """Get credential value, checking environment variables first.

        ``<NAME>_<KEY>`` (e.g. ``ALPHAVANTAGE_API_KEY``) wins over the stored
        value.

        Args:
            key: Credential key name

        Returns:
            Credential value or None if not found
        """
        env_value = os.getenv(f"{self.name.upper()}_{key.upper()}")
        if env_value:
            return env_value

        return self.credentials.get(key.lower())

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key.lower(), default)
