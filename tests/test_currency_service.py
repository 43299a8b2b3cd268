"""Tests for currency conversion and the session rate cache."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from finance_quote.models.quote_models import QuoteSet
from finance_quote.services.currency_service import (
    ConversionCache, CurrencyConverter, CONVERSION_FAILED_MESSAGE
)

from conftest import FakeRateSource


@pytest.fixture
def converter(rate_source):
    return CurrencyConverter(rate_source)


class TestConversionCache:
    """Test cases for ConversionCache."""

    def test_fetch_once_per_key(self):
        cache = ConversionCache()
        fetch = MagicMock(return_value=1.5)

        assert cache.get_or_fetch(('USD', 'EUR'), fetch) == 1.5
        assert cache.get_or_fetch(('USD', 'EUR'), fetch) == 1.5

        fetch.assert_called_once()
        assert ('USD', 'EUR') in cache
        assert len(cache) == 1

    def test_failure_is_cached(self):
        cache = ConversionCache()
        fetch = MagicMock(return_value=None)

        assert cache.get_or_fetch(('USD', 'XYZ'), fetch) is None
        assert cache.get_or_fetch(('USD', 'XYZ'), fetch) is None

        fetch.assert_called_once()

    def test_concurrent_misses_fetch_once(self):
        cache = ConversionCache()
        calls = []

        def slow_fetch():
            calls.append(1)
            time.sleep(0.05)
            return 2.0

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_fetch(('GBP', 'USD'), slow_fetch)))
            for _ in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert results == [2.0] * 5


class TestCurrency:
    """Test cases for CurrencyConverter.currency."""

    def test_same_currency_needs_no_lookup(self, converter, rate_source):
        assert converter.currency('USD', 'USD') == 1
        assert rate_source.calls == []

    def test_same_currency_returns_amount(self, converter, rate_source):
        assert converter.currency('15.95 USD', 'usd') == 15.95
        assert rate_source.calls == []

    def test_amount_is_scaled(self, converter):
        assert converter.currency('15.95 USD', 'EUR') == pytest.approx(7.975)

    def test_amount_defaults_to_one(self, converter):
        assert converter.currency('GBP', 'EUR') == 1.25

    def test_no_rate(self, converter):
        assert converter.currency('USD', 'JPY') is None

    def test_rate_fetched_once_per_pair(self, converter, rate_source):
        converter.currency('1 USD', 'EUR')
        converter.currency('2 USD', 'EUR')

        assert rate_source.calls == [('USD', 'EUR')]

    def test_rate_source_exception_is_no_rate(self):
        source = MagicMock()
        source.fetch_rate.side_effect = RuntimeError('boom')
        converter = CurrencyConverter(source)

        assert converter.exchange_rate('USD', 'EUR') is None


class TestConvert:
    """Test cases for CurrencyConverter.convert."""

    def test_rescales_designated_fields(self, converter):
        quotes = QuoteSet({'IBM': {
            'success': True,
            'currency': 'USD',
            'price': '100',
            'day_range': '105.4 - 108.3',
            'last': 20.0,
            'volume': '5000',
        }})

        converter.convert(quotes, ['IBM'], ['price', 'day_range', 'last'], 'EUR')

        record = quotes['IBM']
        assert record['price'] == '50'
        assert record['day_range'] == '52.7 - 54.15'
        assert record['last'] == 10.0
        assert record['volume'] == '5000'
        assert record['currency'] == 'EUR'
        assert record['success'] is True

    def test_missing_fields_skipped(self, converter):
        quotes = QuoteSet({'IBM': {'success': True, 'currency': 'USD', 'price': '10'}})

        converter.convert(quotes, ['IBM'], ['price', 'bid', 'ask'], 'EUR')

        assert quotes['IBM'] == {'success': True, 'currency': 'EUR', 'price': '5'}

    def test_already_in_target_currency(self, converter, rate_source):
        quotes = QuoteSet({'SAP': {'success': True, 'currency': 'EUR', 'price': '10'}})

        converter.convert(quotes, ['SAP'], ['price'], 'eur')

        assert quotes['SAP']['price'] == '10'
        assert rate_source.calls == []

    def test_target_currency_label_normalised(self, converter, rate_source):
        quotes = QuoteSet({'SAP': {'success': True, 'currency': 'eur', 'price': '10'}})

        converter.convert(quotes, ['SAP'], ['price'], 'EUR')

        assert quotes['SAP'] == {'success': True, 'currency': 'EUR', 'price': '10'}
        assert rate_source.calls == []

    def test_no_currency_label(self, converter, rate_source):
        quotes = QuoteSet({'X': {'success': True, 'price': '10'}})

        converter.convert(quotes, ['X'], ['price'], 'EUR')

        assert quotes['X'] == {'success': True, 'price': '10'}
        assert rate_source.calls == []

    def test_failed_rate_marks_symbol(self, converter):
        quotes = QuoteSet({'TM': {'success': True, 'currency': 'JPY', 'price': '2500'}})

        converter.convert(quotes, ['TM'], ['price'], 'EUR')

        assert quotes['TM'] == {
            'success': False,
            'errormsg': CONVERSION_FAILED_MESSAGE,
            'currency': 'JPY',
            'price': '2500',
        }

    def test_pair_looked_up_once_for_many_symbols(self):
        source = FakeRateSource({('USD', 'EUR'): 0.5})
        converter = CurrencyConverter(source)
        quotes = QuoteSet({
            'IBM': {'success': True, 'currency': 'USD', 'price': '10'},
            'MSFT': {'success': True, 'currency': 'USD', 'price': '20'},
        })

        converter.convert(quotes, ['IBM', 'MSFT', 'IBM'], ['price'], 'EUR')

        assert quotes['IBM']['price'] == '5'
        assert quotes['MSFT']['price'] == '10'
        assert source.calls == [('USD', 'EUR')]
