"""The quoter: a configured session for looking up quotes.

A quoter loads a set of quote modules into its own method registry, owns
the exchange rate cache used for currency conversion and carries the
per-session settings (timeout, failover, target currency, required labels).

Example:
    with Quoter('mysource', fetch_currency='EUR') as quoter:
        quotes = quoter.fetch('nasdaq', 'AAPL', 'MSFT')
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from finance_quote.adapters.catalog import available_adapters
from finance_quote.adapters.utils import HTTPClient
from finance_quote.models.quote_models import DEFAULT_CURRENCY_FIELDS, QuoteSet
from finance_quote.registry import MethodRegistry
from finance_quote.services import currency_catalog
from finance_quote.services.currency_service import ConversionCache, CurrencyConverter
from finance_quote.services.exchange_rate_service import AlphaVantageRateSource, ExchangeRateSource
from finance_quote.services.quote_service import FailoverDispatcher
from finance_quote.utils.config import ConfigManager, config as app_config
from finance_quote.utils.exceptions import InvalidParameterError
from finance_quote.utils.logging import get_logger
from finance_quote.utils.normalizers import unify_date

logger = get_logger(__name__)

DEFAULTS_TOKEN = '-defaults'

_NoneType = type(None)

# Named constructor parameter -> accepted value types
NAMED_PARAMETERS: Dict[str, Tuple[type, ...]] = {
    'timeout': (int, float, _NoneType),
    'failover': (bool,),
    'fetch_currency': (str, _NoneType),
    'required_labels': (list, tuple),
}


def _check_parameter(name: str, value: Any) -> None:
    expected = NAMED_PARAMETERS[name]
    if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
        names = ', '.join(t.__name__ for t in expected)
        raise InvalidParameterError(
            f"Unexpected type for named parameter {name}: expected {names}, got {type(value).__name__}",
            parameter=name,
            value=value
        )
    if name == 'timeout' and value is not None and value < 0:
        raise InvalidParameterError("timeout must not be negative", parameter=name, value=value)


def _expand_modules(modules: Iterable[Any]) -> List[Any]:
    expanded: List[Any] = []
    for module in modules:
        if isinstance(module, str) and module == DEFAULTS_TOKEN:
            expanded.extend(available_adapters())
        else:
            expanded.append(module)
    return expanded


class Quoter:
    """Quote lookup session."""

    def __init__(
        self,
        *modules: Any,
        config: Optional[ConfigManager] = None,
        rate_source: Optional[ExchangeRateSource] = None,
        **parameters: Any
    ):
        """Create a quoter and load its quote modules.

        Modules are given by catalog name, dotted import path, adapter class
        or adapter object. ``'-defaults'`` stands for every catalogued
        adapter. Without any modules the ``finance_quote.quoter.modules``
        setting (``FQ_LOAD_QUOTELET``) is used, and failing that the defaults.

        Keyword parameters ``timeout``, ``failover``, ``fetch_currency`` and
        ``required_labels`` override the configured session settings. Any
        other keyword must map a module name to that module's configuration,
        e.g. ``alphavantage={'API_KEY': '...'}``.

        Args:
            *modules: Quote modules to load
            config: Configuration to use instead of the global one
            rate_source: Exchange rate source for currency conversion
            **parameters: Session settings and per-module configuration

        Raises:
            InvalidParameterError: On an unknown or badly typed parameter
            ConfigurationError: If a module cannot be loaded
        """
        self.config = config or app_config

        self._timeout = self.config.get('finance_quote.quoter.timeout')
        self._failover = self.config.get('finance_quote.quoter.failover', True)
        self._fetch_currency = self.config.get('finance_quote.quoter.fetch_currency')
        self._required_labels = list(self.config.get('finance_quote.quoter.required_labels', []))
        self._module_configs: Dict[str, Dict[str, Any]] = {}

        for name, value in parameters.items():
            if name in NAMED_PARAMETERS:
                _check_parameter(name, value)
                setattr(self, f"_{name}", list(value) if name == 'required_labels' else value)
            elif isinstance(value, Mapping):
                self._module_configs[name] = dict(value)
            else:
                raise InvalidParameterError(
                    f"Unknown parameter {name}; module configuration must be a mapping",
                    parameter=name,
                    value=value
                )

        if self._fetch_currency:
            self._fetch_currency = self._fetch_currency.upper()

        self._user_agent: Optional[HTTPClient] = None
        self.rate_source = rate_source or AlphaVantageRateSource(
            config_manager=self.config,
            timeout=self._timeout,
            module_config=self.module_config('alphavantage')
        )
        self.rate_cache = ConversionCache()
        self.converter = CurrencyConverter(self.rate_source, self.rate_cache)

        self.registry = MethodRegistry()
        self.dispatcher = FailoverDispatcher(self.registry, self.converter)

        load_modules = _expand_modules(modules)
        if not load_modules:
            load_modules = _expand_modules(self.config.get('finance_quote.quoter.modules') or [])
        if not load_modules:
            load_modules = available_adapters()

        for module in load_modules:
            self.registry.load_module(module, self._module_configs)

        logger.debug(f"Quoter ready with modules {self.registry.loaded_modules()} "
                     f"and methods {sorted(self.registry.methods())}")

    # Session settings

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @timeout.setter
    def timeout(self, value: Optional[float]) -> None:
        _check_parameter('timeout', value)
        self._timeout = value
        if self._user_agent is not None:
            self._user_agent.timeout = value
        self.rate_source.set_timeout(value)

    @property
    def failover(self) -> bool:
        return self._failover

    @failover.setter
    def failover(self, value: bool) -> None:
        self._failover = bool(value)

    @property
    def fetch_currency(self) -> Optional[str]:
        return self._fetch_currency

    @fetch_currency.setter
    def fetch_currency(self, value: Optional[str]) -> None:
        _check_parameter('fetch_currency', value)
        self._fetch_currency = value.upper() if value else None

    @property
    def required_labels(self) -> List[str]:
        return list(self._required_labels)

    @required_labels.setter
    def required_labels(self, labels: Iterable[str]) -> None:
        _check_parameter('required_labels', labels)
        self._required_labels = list(labels)

    def require_labels(self, *labels: str) -> None:
        """Only use sources that declare every one of ``labels``; no labels clears the list."""
        self.required_labels = labels

    def set_currency(self, currency: Optional[str] = None) -> Optional[str]:
        """Set the target currency when one is given and return the current one."""
        if currency is not None:
            self.fetch_currency = currency
        return self.fetch_currency

    def module_config(self, name: str) -> Dict[str, Any]:
        """Configuration passed for module ``name`` (case-insensitive), or an empty dict."""
        for key, value in self._module_configs.items():
            if key.lower() == name.lower():
                return dict(value)
        return {}

    # Lookups

    def fetch(self, method: str, *symbols: Any) -> QuoteSet:
        """Fetch quotes for ``symbols`` from the sources registered for ``method``.

        Symbols may be passed individually or as a single iterable. Every
        requested symbol gets a record with ``success`` and, on failure,
        ``errormsg``; a failing source or conversion never raises.

        Args:
            method: Fetch method name
            *symbols: Symbols to look up

        Returns:
            Quote set of symbol -> label -> value
        """
        if len(symbols) == 1 and not isinstance(symbols[0], str) and isinstance(symbols[0], Iterable):
            symbols = tuple(symbols[0])

        return self.dispatcher.fetch(
            self,
            method,
            list(symbols),
            required_labels=self._required_labels,
            failover=self._failover,
            target_currency=self._fetch_currency
        )

    def currency(self, source_amount: str, to_currency: str) -> Optional[float]:
        """Convert e.g. ``"15.95 USD"`` into ``to_currency``; None if no rate is available."""
        return self.converter.currency(source_amount, to_currency)

    def currency_lookup(self, **constraints: Any) -> Optional[Dict[str, Dict[str, Any]]]:
        """Filter the known currencies; see :func:`currency_catalog.currency_lookup`."""
        return currency_catalog.currency_lookup(**constraints)

    def get_methods(self) -> List[str]:
        """Fetch methods available in this session."""
        return self.registry.methods()

    sources = get_methods

    def store_date(self, quotes: Dict[str, Dict[str, Any]], symbol: str, pieces: Mapping[str, Any]) -> None:
        """Store ``date`` (MM/DD/YYYY) and ``isodate`` (YYYY-MM-DD) for ``symbol``.

        ``pieces`` may hold ``isodate``, ``usdate``, ``eurodate``, ``year``,
        ``month`` and ``day``; missing parts come from today's date.
        """
        us_date, iso_date = unify_date(dict(pieces))
        record = quotes.setdefault(symbol, {})
        record['date'] = us_date
        record['isodate'] = iso_date

    def get_user_agent(self) -> HTTPClient:
        """HTTP client for adapters, honouring this session's timeout and environment proxies."""
        if self._user_agent is None:
            self._user_agent = HTTPClient(timeout=self._timeout)
        return self._user_agent

    def close(self) -> None:
        """Release the HTTP clients held by this session."""
        if self._user_agent is not None:
            self._user_agent.close()
            self._user_agent = None
        self.rate_source.close()

    def __enter__(self) -> 'Quoter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def get_methods() -> List[str]:
    """Fetch methods offered by the default module list."""
    with Quoter() as quoter:
        return quoter.get_methods()


def get_default_currency_fields() -> List[str]:
    return list(DEFAULT_CURRENCY_FIELDS)
