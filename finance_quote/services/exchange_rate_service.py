"""Remote exchange rate lookup.

The default source is the Alpha Vantage ``CURRENCY_EXCHANGE_RATE`` endpoint.
Any failure (missing API key, non-200 response, malformed payload, explicit
error payload) yields ``None`` rather than an exception.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from finance_quote.adapters.config import AdapterConfig
from finance_quote.adapters.utils import HTTPClient, RateLimiter
from finance_quote.utils.config import ConfigManager, config as app_config
from finance_quote.utils.exceptions import NetworkError, RateUnavailableError
from finance_quote.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)

RATE_PAYLOAD_KEY = 'Realtime Currency Exchange Rate'
RATE_FIELD = '5. Exchange Rate'
INVERSE_RATE_DIGITS = 8


class ExchangeRateSource(ABC):
    """Something that can price one currency in another."""

    @abstractmethod
    def fetch_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Return how many ``to_currency`` units one ``from_currency`` buys.

        Returns:
            The rate, or None when no usable rate could be obtained
        """
        pass

    def set_timeout(self, timeout: Optional[float]) -> None:
        pass

    def close(self) -> None:
        pass


class AlphaVantageRateSource(ExchangeRateSource):
    """Exchange rates from Alpha Vantage."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        timeout: Optional[float] = None,
        http_client: Optional[HTTPClient] = None,
        module_config: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the rate source.

        Args:
            config_manager: Configuration to read ``finance_quote.currency.*`` from
            timeout: Per-request timeout in seconds
            http_client: Client to use instead of creating one
            module_config: The quoter's ``alphavantage`` block, e.g. ``{'API_KEY': ...}``
            sleep: Function used to wait between rate-limited attempts
        """
        settings = config_manager or app_config
        self.api_url = settings.get('finance_quote.currency.api_url')
        self.retry_attempts = settings.get('finance_quote.currency.retry_attempts', 5)
        self.retry_delay = settings.get('finance_quote.currency.retry_delay', 20.0)
        self.precision_threshold = settings.get('finance_quote.currency.precision_threshold', 0.001)

        self.adapter_config = AdapterConfig.from_mapping('alphavantage', module_config)
        if 'api_key' not in self.adapter_config.credentials and settings.get('finance_quote.currency.api_key'):
            self.adapter_config.credentials['api_key'] = settings.get('finance_quote.currency.api_key')

        self.timeout = self.adapter_config.timeout if self.adapter_config.timeout is not None else timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._max_retries = self.adapter_config.max_retries
        if self._max_retries is None:
            self._max_retries = settings.get('finance_quote.currency.max_retries', 0)
        self._rate_limit = self.adapter_config.rate_limit
        if self._rate_limit is None:
            self._rate_limit = settings.get('finance_quote.currency.rate_limit', 5.0)
        self._sleep = sleep

    @property
    def http_client(self) -> HTTPClient:
        if self._http_client is None:
            self._http_client = HTTPClient(
                timeout=self.timeout,
                rate_limiter=RateLimiter(self._rate_limit) if self._rate_limit else None,
                max_retries=self._max_retries
            )
        return self._http_client

    @property
    def api_key(self) -> Optional[str]:
        return self.adapter_config.get_credential('api_key')

    def set_timeout(self, timeout: Optional[float]) -> None:
        self.timeout = timeout
        if self._http_client is not None:
            self._http_client.timeout = timeout

    def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def fetch_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        try:
            return self._fetch_rate(from_currency.upper(), to_currency.upper(), allow_inverse=True)
        except RateUnavailableError as e:
            logger.warning(str(e))
            return None

    def _fetch_rate(self, from_currency: str, to_currency: str, allow_inverse: bool) -> float:
        rate = self._query(from_currency, to_currency)

        if rate < self.precision_threshold and allow_inverse:
            # Recompute tiny rates from the inverse pair
            try:
                inverse = self._fetch_rate(to_currency, from_currency, allow_inverse=False)
            except RateUnavailableError as e:
                logger.debug(f"Inverse rate unavailable, keeping direct rate: {str(e)}")
            else:
                rate = round(1.0 / inverse, INVERSE_RATE_DIGITS)

        return rate

    def _query(self, from_currency: str, to_currency: str) -> float:
        """Query the remote API, retrying while it answers with a rate-limit note.

        Raises:
            RateUnavailableError: If no usable rate was returned
        """
        api_key = self.api_key
        if not api_key:
            raise RateUnavailableError(
                "No Alpha Vantage API key configured; currency conversion unavailable",
                from_currency=from_currency,
                to_currency=to_currency
            )

        params = {
            'function': 'CURRENCY_EXCHANGE_RATE',
            'from_currency': from_currency,
            'to_currency': to_currency,
            'apikey': api_key
        }

        payload: Dict[str, Any] = {}
        for attempt in range(1, self.retry_attempts + 1):
            started = time.monotonic()
            try:
                payload = self.http_client.get_json(self.api_url, params=params)
            except NetworkError as e:
                log_api_call(logger, 'alphavantage', self.api_url, params,
                             response_time=time.monotonic() - started,
                             status_code=getattr(e, 'status_code', None), error=e)
                raise RateUnavailableError(
                    f"Exchange rate request failed: {e.message}",
                    from_currency=from_currency,
                    to_currency=to_currency,
                    original_exception=e
                )

            log_api_call(logger, 'alphavantage', self.api_url, params,
                         response_time=time.monotonic() - started, status_code=200)

            if not isinstance(payload, dict) or not payload:
                raise RateUnavailableError("Malformed exchange rate payload",
                                           from_currency=from_currency, to_currency=to_currency)
            if 'Error Message' in payload:
                raise RateUnavailableError(f"Alpha Vantage error: {payload['Error Message']}",
                                           from_currency=from_currency, to_currency=to_currency)

            if self._extract_rate(payload) is not None:
                break
            if 'Note' in payload and attempt < self.retry_attempts:
                logger.info(f"Alpha Vantage asked us to slow down (attempt {attempt}/{self.retry_attempts}); "
                            f"waiting {self.retry_delay} seconds")
                self._sleep(self.retry_delay)
                continue
            break

        rate = self._extract_rate(payload)
        if rate is None:
            raise RateUnavailableError(
                f"No usable exchange rate for {from_currency} -> {to_currency}",
                from_currency=from_currency,
                to_currency=to_currency
            )
        return rate

    @staticmethod
    def _extract_rate(payload: Dict[str, Any]) -> Optional[float]:
        block = payload.get(RATE_PAYLOAD_KEY)
        if not isinstance(block, dict):
            return None
        try:
            rate = float(block.get(RATE_FIELD))
        except (TypeError, ValueError):
            return None
        return rate if rate else None
