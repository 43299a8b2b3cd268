"""Registry mapping fetch method names to adapter bindings.

Each loaded module contributes one binding per method it implements. The
bindings of a method are kept in load order, which is the order failover
walks them in.
"""

import importlib
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from finance_quote.adapters.base_adapter import QuoteAdapter
from finance_quote.adapters.catalog import get_adapter_class
from finance_quote.models.quote_models import AdapterBinding, DEFAULT_CURRENCY_FIELDS
from finance_quote.utils.exceptions import ConfigurationError, UnknownMethodError
from finance_quote.utils.logging import get_logger

logger = get_logger(__name__)

ModuleReference = Union[str, type, Any]


def _lookup_module_config(module_configs: Mapping[str, Any], name: str) -> Dict[str, Any]:
    for key, value in module_configs.items():
        if key.lower() == name.lower():
            return dict(value)
    return {}


def _import_reference(reference: str) -> Any:
    module_path, _, attribute = reference.partition(':')
    try:
        target = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import quote module '{reference}': {str(e)}",
            config_key='modules',
            original_exception=e
        )

    if attribute:
        try:
            target = getattr(target, attribute)
        except AttributeError as e:
            raise ConfigurationError(
                f"Module '{module_path}' has no attribute '{attribute}'",
                config_key='modules',
                original_exception=e
            )
    return target


def _module_name(target: Any) -> str:
    if isinstance(target, type):
        return getattr(target, 'name', '') or target.__name__
    return getattr(target, 'name', '') or getattr(target, '__name__', '') or type(target).__name__


class MethodRegistry:
    """Ordered method -> binding table owned by one quoter."""

    def __init__(self):
        self._bindings: Dict[str, List[AdapterBinding]] = {}
        self._modules: Dict[str, Any] = {}

    def load_module(
        self,
        reference: ModuleReference,
        module_configs: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """Load a quote module and register a binding for each of its methods.

        ``reference`` may be a catalog name, a dotted import path
        (``package.module`` or ``package.module:Attribute``), a
        :class:`QuoteAdapter` subclass or instance, or any object exposing
        ``methods()`` and ``labels()`` and optionally ``currency_fields()``.
        A module is loaded at most once; later requests are ignored.

        Args:
            reference: The module to load
            module_configs: Module-specific configuration blocks by module name

        Returns:
            True if the module was loaded now, False if it already was

        Raises:
            ConfigurationError: If the reference cannot be resolved or does
                not implement the adapter interface
        """
        module_configs = module_configs or {}

        if isinstance(reference, str):
            if '.' in reference or ':' in reference:
                target = _import_reference(reference)
            else:
                target = get_adapter_class(reference)
                if target is None:
                    raise ConfigurationError(f"Unknown quote module '{reference}'", config_key='modules')
        else:
            target = reference

        name = _module_name(target)
        if name.lower() in self._modules:
            logger.debug(f"Quote module '{name}' already loaded")
            return False

        if isinstance(target, type) and issubclass(target, QuoteAdapter):
            target = target(config=_lookup_module_config(module_configs, name))

        if not (callable(getattr(target, 'methods', None)) and callable(getattr(target, 'labels', None))):
            raise ConfigurationError(
                f"Quote module '{name}' must provide methods() and labels()",
                config_key='modules'
            )

        method_map = target.methods()
        label_map = target.labels()
        fields_func = getattr(target, 'currency_fields', None)
        currency_fields = fields_func() if callable(fields_func) else DEFAULT_CURRENCY_FIELDS
        # Drop duplicates, keep declaration order
        currency_fields = tuple(dict.fromkeys(currency_fields))

        self._modules[name.lower()] = target
        for method, function in method_map.items():
            self.register(method, AdapterBinding(
                function=function,
                labels=frozenset(label_map.get(method, ())),
                currency_fields=currency_fields,
                module=name
            ))

        logger.info(f"Loaded quote module '{name}' providing {sorted(method_map)}")
        return True

    def register(self, method: str, binding: AdapterBinding) -> None:
        """Append ``binding`` to the failover chain of ``method``."""
        self._bindings.setdefault(method.lower(), []).append(binding)

    def resolve(self, method: str) -> Tuple[AdapterBinding, ...]:
        """Return the bindings for ``method`` in registration order.

        Raises:
            UnknownMethodError: If no module implements ``method``
        """
        bindings = self._bindings.get(method.lower())
        if not bindings:
            raise UnknownMethodError(f"Undefined fetch-method {method}", method=method)
        return tuple(bindings)

    def methods(self) -> List[str]:
        return list(self._bindings)

    def loaded_modules(self) -> List[str]:
        return [_module_name(module) for module in self._modules.values()]

    def get_module(self, name: str) -> Optional[Any]:
        return self._modules.get(name.lower())

    def __contains__(self, method: object) -> bool:
        return isinstance(method, str) and method.lower() in self._bindings
