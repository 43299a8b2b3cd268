"""Tests for the adapter base class, adapter configuration and HTTP utilities."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from finance_quote.adapters import (
    AdapterConfig, HTTPClient, QuoteAdapter, RateLimiter, normalize_symbol
)
from finance_quote.models.quote_models import DEFAULT_CURRENCY_FIELDS
from finance_quote.utils.exceptions import NetworkError, RateLimitError


def make_response(status_code=200, json_data=None, reason='OK', url='https://example.test/q'):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    response.url = url
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


class MinimalAdapter(QuoteAdapter):
    def methods(self):
        return {'fund': self.fund}

    def labels(self):
        return {'fund': ['nav']}

    def fund(self, quoter, symbols):
        return {}


class TestQuoteAdapter:
    """Test cases for the QuoteAdapter base class."""

    def test_name_defaults_to_class_name(self):
        adapter = MinimalAdapter()

        assert adapter.name == 'MinimalAdapter'
        assert adapter.config == {}

    def test_default_currency_fields(self):
        assert MinimalAdapter().currency_fields() == list(DEFAULT_CURRENCY_FIELDS)

    def test_abstract_methods_required(self):
        with pytest.raises(TypeError):
            QuoteAdapter()

    def test_repr_lists_methods(self):
        assert repr(MinimalAdapter()) == "MinimalAdapter(name='MinimalAdapter', methods=['fund'])"


class TestAdapterConfig:
    """Test cases for AdapterConfig."""

    def test_from_mapping(self):
        config = AdapterConfig.from_mapping('alphavantage', {
            'API_KEY': 'k', 'Timeout': 5, 'endpoint': 'https://example.test'
        })

        assert config.credentials == {'api_key': 'k'}
        assert config.timeout == 5
        assert config.get_setting('ENDPOINT') == 'https://example.test'
        assert config.max_retries is None
        assert config.rate_limit is None

    def test_apikey_spelling_normalised(self):
        config = AdapterConfig.from_mapping('alphavantage', {'apikey': 'k'})

        assert config.credentials == {'api_key': 'k'}

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv('IEXCLOUD_API_KEY', 'from-env')
        config = AdapterConfig.from_mapping('iexcloud', {'API_KEY': 'stored'})

        assert config.get_credential('api_key') == 'from-env'

    def test_stored_credential(self, monkeypatch):
        monkeypatch.delenv('IEXCLOUD_TOKEN', raising=False)
        config = AdapterConfig.from_mapping('iexcloud', {'token': 't'})

        assert config.get_credential('token') == 't'
        assert config.get_credential('password') is None


class TestRateLimiter:
    """Test cases for RateLimiter."""

    def test_burst_allowed_without_waiting(self):
        limiter = RateLimiter(requests_per_second=1.0, burst_size=3)

        with patch('finance_quote.adapters.utils.time.sleep') as sleep:
            for _ in range(3):
                limiter.acquire()

        sleep.assert_not_called()

    def test_waits_when_bucket_empty(self):
        limiter = RateLimiter(requests_per_second=2.0, burst_size=1)

        with patch('finance_quote.adapters.utils.time.sleep') as sleep:
            limiter.acquire()
            limiter.acquire()

        sleep.assert_called_once()
        assert 0 < sleep.call_args.args[0] <= 0.5

    def test_zero_rate_disables_limiting(self):
        limiter = RateLimiter(requests_per_second=0, burst_size=1)

        with patch('finance_quote.adapters.utils.time.sleep') as sleep:
            for _ in range(5):
                limiter.acquire()

        sleep.assert_not_called()


class TestHTTPClient:
    """Test cases for HTTPClient."""

    @pytest.fixture
    def client(self):
        client = HTTPClient(base_url='https://example.test/api', timeout=10)
        client.session = MagicMock()
        return client

    def test_user_agent_and_proxies(self):
        client = HTTPClient(proxies={'https': 'http://proxy.test:3128'})

        assert client.session.headers['User-Agent'].startswith('finance-quote/')
        assert client.session.proxies['https'] == 'http://proxy.test:3128'
        client.close()

    def test_get_uses_timeout_and_base_url(self, client):
        client.session.request.return_value = make_response()

        client.get('quote', params={'s': 'IBM'})

        kwargs = client.session.request.call_args.kwargs
        assert kwargs['url'] == 'https://example.test/api/quote'
        assert kwargs['timeout'] == 10
        assert kwargs['params'] == {'s': 'IBM'}

    def test_post_sends_json_body(self, client):
        client.session.request.return_value = make_response()

        client.post('batch', json_data={'symbols': ['IBM']})

        kwargs = client.session.request.call_args.kwargs
        assert kwargs['method'] == 'POST'
        assert kwargs['json'] == {'symbols': ['IBM']}

    def test_absolute_url_not_joined(self, client):
        client.session.request.return_value = make_response()

        client.get('https://other.test/query')

        assert client.session.request.call_args.kwargs['url'] == 'https://other.test/query'

    def test_get_json(self, client):
        client.session.request.return_value = make_response(json_data={'a': 1})

        assert client.get_json('quote') == {'a': 1}

    def test_malformed_json(self, client):
        client.session.request.return_value = make_response(json_data=ValueError('no JSON'))

        with pytest.raises(NetworkError, match='Malformed JSON'):
            client.get_json('quote')

    def test_non_200_raises(self, client):
        client.session.request.return_value = make_response(status_code=503, reason='Service Unavailable')

        with pytest.raises(NetworkError) as exc_info:
            client.get('quote')

        assert exc_info.value.status_code == 503

    def test_204_is_not_success(self, client):
        client.session.request.return_value = make_response(status_code=204, reason='No Content')

        with pytest.raises(NetworkError):
            client.get('quote')

    def test_rate_limit(self, client):
        client.session.request.return_value = make_response(status_code=429, reason='Too Many Requests')

        with pytest.raises(RateLimitError):
            client.get('quote')

    def test_connection_error_retried(self, client):
        client.max_retries = 2
        client.session.request.side_effect = [
            requests.ConnectionError('reset'),
            make_response(json_data={'ok': True}),
        ]

        with patch('finance_quote.adapters.utils.time.sleep'):
            assert client.get_json('quote') == {'ok': True}

        assert client.session.request.call_count == 2

    def test_connection_error_exhausted(self, client):
        client.session.request.side_effect = requests.ConnectionError('reset')

        with pytest.raises(NetworkError, match='failed after 1 attempts'):
            client.get('quote')


@pytest.mark.parametrize("symbol,expected", [
    (' ibm ', 'IBM'),
    ('eurusd', 'EURUSD'),
    ('', ''),
])
def test_normalize_symbol(symbol, expected):
    assert normalize_symbol(symbol) == expected
