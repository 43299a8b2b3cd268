"""Configuration management for the finance quote system."""

import os
import yaml
from typing import Dict, Any, Optional, List, Callable, Tuple

from finance_quote.utils.exceptions import ConfigurationError


def _split_words(value: str) -> List[str]:
    return value.split()


def _coerce_scalar(value: str) -> Any:
    """Convert an environment string to bool/int/float where it looks like one."""
    if value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


class ConfigManager:
    """Manages configuration from YAML files and environment variables."""

    # Environment variable -> (config key, converter)
    ENV_MAPPINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
        'FQ_LOAD_QUOTELET': ('finance_quote.quoter.modules', _split_words),
        'FINANCE_QUOTE_TIMEOUT': ('finance_quote.quoter.timeout', _coerce_scalar),
        'FINANCE_QUOTE_FETCH_CURRENCY': ('finance_quote.quoter.fetch_currency', str.upper),
        'ALPHAVANTAGE_API_KEY': ('finance_quote.currency.api_key', str),
        'FINANCE_QUOTE_LOG_LEVEL': ('finance_quote.logging.level', str.upper),
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. Defaults to 'config.yaml'
        """
        self.config_path = config_path or "config.yaml"
        self._config: Dict[str, Any] = {}
        self._schema: Dict[str, Any] = {}
        self._load_schema()
        self.load_config()

    def load_config(self) -> None:
        """Load configuration from defaults, file and environment variables."""
        self._config = self._get_default_config()

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r') as file:
                    file_config = yaml.safe_load(file) or {}
                self._merge_config(self._config, file_config)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to load configuration from {self.config_path}: {str(e)}",
                    config_file=self.config_path,
                    original_exception=e
                )

        self._load_env_overrides()
        self._validate_config()

    def _load_schema(self) -> None:
        """Load configuration schema for validation."""
        self._schema = {
            'finance_quote': {
                'quoter': {
                    'timeout': {'type': 'float', 'min': 0, 'max': 3600, 'nullable': True},
                    'failover': {'type': 'bool'},
                    'fetch_currency': {'type': 'str', 'nullable': True},
                    'required_labels': {'type': 'list'},
                    'modules': {'type': 'list'}
                },
                'currency': {
                    'api_url': {'type': 'str'},
                    'api_key': {'type': 'str', 'nullable': True},
                    'retry_attempts': {'type': 'int', 'min': 1, 'max': 20},
                    'retry_delay': {'type': 'float', 'min': 0.0, 'max': 300.0},
                    'precision_threshold': {'type': 'float', 'min': 0.0, 'max': 1.0},
                    'max_retries': {'type': 'int', 'min': 0, 'max': 10},
                    'rate_limit': {'type': 'float', 'min': 0.0, 'max': 100.0}
                },
                'logging': {
                    'level': {'type': 'str', 'allowed': ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']},
                    'file_path': {'type': 'str', 'nullable': True},
                    'max_file_size': {'type': 'str'},
                    'backup_count': {'type': 'int', 'min': 0, 'max': 100},
                    'structured': {'type': 'bool', 'default': False}
                }
            }
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'finance_quote.quoter.timeout')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save_config(self, path: Optional[str] = None) -> None:
        """Save current configuration to file.

        Args:
            path: Path to save configuration. Defaults to current config_path
        """
        save_path = path or self.config_path
        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(save_path, 'w') as file:
            yaml.dump(self._config, file, default_flow_style=False, indent=2)

    def as_dict(self) -> Dict[str, Any]:
        return self._config

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return {
            'finance_quote': {
                'quoter': {
                    'timeout': None,
                    'failover': True,
                    'fetch_currency': None,
                    'required_labels': [],
                    'modules': []
                },
                'currency': {
                    'api_url': 'https://www.alphavantage.co/query',
                    'api_key': None,
                    'retry_attempts': 5,
                    'retry_delay': 20.0,
                    'precision_threshold': 0.001,
                    'max_retries': 0,
                    'rate_limit': 5.0
                },
                'logging': {
                    'level': 'INFO',
                    'file_path': './logs/finance_quote.log',
                    'max_file_size': '10MB',
                    'backup_count': 5,
                    'structured': False
                }
            }
        }

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _load_env_overrides(self) -> None:
        """Load configuration overrides from environment variables."""
        for env_var, (config_key, converter) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value:
                self.set(config_key, converter(value))

    def _validate_config(self) -> None:
        """Validate configuration against schema."""
        errors: List[str] = []
        self._validate_against_schema(self._config, self._schema, '', errors)

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(errors)
            raise ConfigurationError(error_msg, config_file=self.config_path)

    @staticmethod
    def _is_leaf(schema_value: Any) -> bool:
        return isinstance(schema_value, dict) and any(
            k in schema_value for k in ['type', 'allowed', 'min', 'max']
        )

    def _validate_against_schema(self, config: Dict[str, Any], schema: Dict[str, Any],
                                 path: str, errors: List[str]) -> None:
        """Recursively validate configuration against schema."""
        for key, schema_value in schema.items():
            full_path = f"{path}.{key}" if path else key

            if key not in config:
                if self._is_leaf(schema_value):
                    if schema_value.get('default') is not None:
                        config[key] = schema_value['default']
                else:
                    config[key] = {}
                    self._validate_against_schema(config[key], schema_value, full_path, errors)
                continue

            value = config[key]

            if not self._is_leaf(schema_value):
                if not isinstance(value, dict):
                    errors.append(f"{full_path} should be an object")
                else:
                    self._validate_against_schema(value, schema_value, full_path, errors)
                continue

            if value is None:
                if not schema_value.get('nullable', False):
                    errors.append(f"{full_path} cannot be null")
                continue

            expected = schema_value.get('type')
            if expected == 'str' and not isinstance(value, str):
                errors.append(f"{full_path} should be a string")
            elif expected == 'int' and (not isinstance(value, int) or isinstance(value, bool)):
                errors.append(f"{full_path} should be an integer")
            elif expected == 'float' and (not isinstance(value, (int, float)) or isinstance(value, bool)):
                errors.append(f"{full_path} should be a number")
            elif expected == 'bool' and not isinstance(value, bool):
                errors.append(f"{full_path} should be a boolean")
            elif expected == 'list' and not isinstance(value, list):
                errors.append(f"{full_path} should be a list")

            if 'allowed' in schema_value and value not in schema_value['allowed']:
                errors.append(f"{full_path} should be one of {schema_value['allowed']}")

            if isinstance(value, (int, float)) and not isinstance(value, bool):
                if 'min' in schema_value and value < schema_value['min']:
                    errors.append(f"{full_path} should be at least {schema_value['min']}")
                if 'max' in schema_value and value > schema_value['max']:
                    errors.append(f"{full_path} should be at most {schema_value['max']}")


# Global configuration instance
config = ConfigManager()
