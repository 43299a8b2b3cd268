"""Tests for the Alpha Vantage exchange rate source."""

from unittest.mock import MagicMock, patch

import pytest

from finance_quote.services.exchange_rate_service import AlphaVantageRateSource
from finance_quote.utils.exceptions import NetworkError


def rate_payload(rate):
    return {
        'Realtime Currency Exchange Rate': {
            '1. From_Currency Code': 'USD',
            '3. To_Currency Code': 'EUR',
            '5. Exchange Rate': str(rate),
        }
    }


NOTE_PAYLOAD = {'Note': 'Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute.'}


@pytest.fixture
def http_client():
    return MagicMock()


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def source(app_config, http_client, sleep):
    return AlphaVantageRateSource(
        config_manager=app_config,
        http_client=http_client,
        module_config={'API_KEY': 'test-key'},
        sleep=sleep
    )


class TestAlphaVantageRateSource:
    """Test cases for AlphaVantageRateSource."""

    def test_fetch_rate(self, source, http_client):
        http_client.get_json.return_value = rate_payload('0.9150')

        assert source.fetch_rate('usd', 'eur') == 0.915

        url, = http_client.get_json.call_args.args
        params = http_client.get_json.call_args.kwargs['params']
        assert url == 'https://www.alphavantage.co/query'
        assert params == {
            'function': 'CURRENCY_EXCHANGE_RATE',
            'from_currency': 'USD',
            'to_currency': 'EUR',
            'apikey': 'test-key',
        }

    def test_retries_while_rate_limited(self, source, http_client, sleep):
        http_client.get_json.side_effect = [NOTE_PAYLOAD, NOTE_PAYLOAD, rate_payload('1.1')]

        assert source.fetch_rate('EUR', 'USD') == 1.1
        assert http_client.get_json.call_count == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(20.0)

    def test_gives_up_after_five_attempts(self, source, http_client, sleep):
        http_client.get_json.return_value = NOTE_PAYLOAD

        assert source.fetch_rate('EUR', 'USD') is None
        assert http_client.get_json.call_count == 5
        assert sleep.call_count == 4

    def test_retry_settings_from_config(self, app_config, http_client, sleep):
        app_config.set('finance_quote.currency.retry_attempts', 2)
        app_config.set('finance_quote.currency.retry_delay', 0.5)
        source = AlphaVantageRateSource(config_manager=app_config, http_client=http_client,
                                        module_config={'api_key': 'k'}, sleep=sleep)
        http_client.get_json.return_value = NOTE_PAYLOAD

        assert source.fetch_rate('EUR', 'USD') is None
        assert http_client.get_json.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_small_rate_uses_inverse(self, source, http_client):
        http_client.get_json.side_effect = [rate_payload('0.00008'), rate_payload('12345.678')]

        rate = source.fetch_rate('IDR', 'GBP')

        assert rate == round(1 / 12345.678, 8)
        second_params = http_client.get_json.call_args_list[1].kwargs['params']
        assert second_params['from_currency'] == 'GBP'
        assert second_params['to_currency'] == 'IDR'

    def test_inverse_not_applied_recursively(self, source, http_client):
        http_client.get_json.side_effect = [rate_payload('0.0005'), rate_payload('0.0004')]

        assert source.fetch_rate('AAA', 'BBB') == round(1 / 0.0004, 8)
        assert http_client.get_json.call_count == 2

    def test_small_rate_kept_when_inverse_unavailable(self, source, http_client):
        http_client.get_json.side_effect = [rate_payload('0.0005'), {'Error Message': 'Invalid API call'}]

        assert source.fetch_rate('AAA', 'BBB') == 0.0005

    def test_missing_api_key(self, app_config, http_client):
        source = AlphaVantageRateSource(config_manager=app_config, http_client=http_client)

        assert source.fetch_rate('USD', 'EUR') is None
        http_client.get_json.assert_not_called()

    def test_api_key_from_configuration(self, app_config, http_client):
        app_config.set('finance_quote.currency.api_key', 'from-config')
        source = AlphaVantageRateSource(config_manager=app_config, http_client=http_client)

        assert source.api_key == 'from-config'

    def test_api_key_from_environment(self, app_config, http_client, monkeypatch):
        monkeypatch.setenv('ALPHAVANTAGE_API_KEY', 'from-env')
        source = AlphaVantageRateSource(config_manager=app_config, http_client=http_client,
                                        module_config={'API_KEY': 'from-params'})

        assert source.api_key == 'from-env'

    def test_error_message_payload(self, source, http_client):
        http_client.get_json.return_value = {'Error Message': 'Invalid API call'}

        assert source.fetch_rate('USD', 'XXX') is None
        assert http_client.get_json.call_count == 1

    def test_network_error(self, source, http_client):
        http_client.get_json.side_effect = NetworkError('HTTP 503: Service Unavailable', status_code=503)

        assert source.fetch_rate('USD', 'EUR') is None

    def test_malformed_payload(self, source, http_client):
        http_client.get_json.return_value = ['not', 'a', 'mapping']

        assert source.fetch_rate('USD', 'EUR') is None

    def test_payload_without_rate(self, source, http_client, sleep):
        http_client.get_json.return_value = {'Information': 'premium endpoint'}

        assert source.fetch_rate('USD', 'EUR') is None
        sleep.assert_not_called()

    def test_set_timeout_updates_client(self, source, http_client):
        source.set_timeout(12)

        assert source.timeout == 12
        assert http_client.timeout == 12

    def test_close_leaves_injected_client_open(self, source, http_client):
        source.close()
        http_client.close.assert_not_called()

    def test_lazily_created_client_is_closed(self, app_config):
        with patch('finance_quote.services.exchange_rate_service.HTTPClient') as client_class:
            source = AlphaVantageRateSource(config_manager=app_config, timeout=7)
            client_class.assert_not_called()

            client = source.http_client
            client_class.assert_called_once()
            assert client_class.call_args.kwargs['timeout'] == 7

            source.close()
            client.close.assert_called_once()

    def test_module_block_overrides_client_settings(self, app_config):
        with patch('finance_quote.services.exchange_rate_service.HTTPClient') as client_class:
            source = AlphaVantageRateSource(
                config_manager=app_config,
                module_config={'rate_limit': 1, 'max_retries': 3}
            )
            source.http_client

        kwargs = client_class.call_args.kwargs
        assert kwargs['max_retries'] == 3
        assert kwargs['rate_limiter'].requests_per_second == 1

    def test_client_settings_default_to_configuration(self, app_config):
        with patch('finance_quote.services.exchange_rate_service.HTTPClient') as client_class:
            AlphaVantageRateSource(config_manager=app_config).http_client

        kwargs = client_class.call_args.kwargs
        assert kwargs['max_retries'] == 0
        assert kwargs['rate_limiter'].requests_per_second == 5.0
