"""HTTP and symbol utilities for adapters and remote services."""

import random
import time
import threading
from typing import Any, Dict, Optional

import requests

from finance_quote.utils.exceptions import NetworkError, RateLimitError
from finance_quote.utils.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Token bucket limiting how often a remote API is called."""

    def __init__(self, requests_per_second: float = 1.0, burst_size: int = 5):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second, 0 disables limiting
            burst_size: Maximum burst size for requests
        """
        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self.tokens = float(burst_size)
        self.last_update = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until a request may be made."""
        if self.requests_per_second <= 0:
            return

        with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.tokens = min(self.burst_size, self.tokens + elapsed * self.requests_per_second)
            self.last_update = now

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.requests_per_second
                logger.debug(f"Rate limiting: waiting {wait_time:.2f} seconds")
                time.sleep(wait_time)
                self.tokens = 0.0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1


class HTTPClient:
    """HTTP client shared by the quoter, its adapters and the rate source.

    Wraps a :class:`requests.Session`, so proxies from the environment are
    honoured. Explicit ``proxies`` take precedence. Only a 200 response is
    treated as success.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = 0,
        proxies: Optional[Dict[str, str]] = None
    ):
        """Initialize HTTP client.

        Args:
            base_url: Base URL for requests
            headers: Default headers for requests
            timeout: Per-request timeout in seconds, None for no limit
            rate_limiter: Rate limiter instance, None for no limiting
            max_retries: Retries on connection failures and HTTP 429
            proxies: Explicit proxy mapping passed to requests
        """
        self.base_url = base_url or ""
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': 'finance-quote/1.0'})
        self.session.headers.update(headers or {})
        if proxies:
            self.session.proxies.update(proxies)

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith('http'):
            return endpoint
        if not self.base_url:
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _check_response(self, response: requests.Response) -> requests.Response:
        if response.status_code == 429:
            raise RateLimitError("Rate limit exceeded", url=response.url, status_code=429)

        if response.status_code != 200:
            raise NetworkError(
                f"HTTP {response.status_code}: {response.reason}",
                url=response.url,
                status_code=response.status_code
            )
        return response

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Make a GET request.

        Args:
            endpoint: Absolute URL or path relative to ``base_url``
            params: Query parameters
            **kwargs: Additional arguments for requests

        Returns:
            The 200 response

        Raises:
            NetworkError: On connection failure or a non-200 status
        """
        return self._request('GET', endpoint, params=params, **kwargs)

    def get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """GET and decode a JSON body.

        Raises:
            NetworkError: On connection failure, non-200 status or a body
                that is not JSON
        """
        response = self.get(endpoint, params=params, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Malformed JSON response: {str(e)}", url=response.url, original_exception=e)

    def post(self, endpoint: str, data: Any = None, json_data: Any = None, **kwargs) -> requests.Response:
        return self._request('POST', endpoint, data=data, json=json_data, **kwargs)

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = self._build_url(endpoint)
        kwargs.setdefault('timeout', self.timeout)
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                if self.rate_limiter:
                    self.rate_limiter.acquire()

                response = self.session.request(method=method, url=url, **kwargs)
                return self._check_response(response)

            except RateLimitError as e:
                last_exception = e
                if attempt < self.max_retries:
                    wait_time = (2 ** attempt) + random.uniform(1, 3)
                    logger.warning(f"Rate limit hit, waiting {wait_time:.2f} seconds before retry")
                    time.sleep(wait_time)
                else:
                    raise

            except requests.RequestException as e:
                last_exception = e
                if attempt < self.max_retries:
                    wait_time = (2 ** attempt) + random.uniform(0, 1)
                    logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries + 1}): {str(e)}. "
                                   f"Retrying in {wait_time:.2f} seconds...")
                    time.sleep(wait_time)

        raise NetworkError(
            f"Request to {url} failed after {self.max_retries + 1} attempts: {str(last_exception)}",
            url=url,
            original_exception=last_exception
        )

    def close(self) -> None:
        self.session.close()


def normalize_symbol(symbol: str) -> str:
    """Upper-case and strip a symbol; currency codes and tickers share this."""
    if not symbol:
        return symbol
    return symbol.upper().strip()
