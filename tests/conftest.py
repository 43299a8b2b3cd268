"""Shared fixtures: canned adapters and an offline rate source."""

import pytest

from finance_quote.adapters.base_adapter import QuoteAdapter
from finance_quote.services.exchange_rate_service import ExchangeRateSource
from finance_quote.utils.config import ConfigManager


class StaticAdapter(QuoteAdapter):
    """Adapter serving canned records for a single method.

    Configuration keys: ``name``, ``method``, ``labels``, ``records``,
    ``currency_fields`` and ``error`` (an exception to raise on every call).
    """

    name = 'static'

    def _initialize_adapter(self) -> None:
        self.name = self.config.get('name', self.name)
        self.method = self.config.get('method', 'test')
        self.declared_labels = list(self.config.get('labels', ['price', 'last', 'currency']))
        self.records = self.config.get('records', {})
        self.fields = self.config.get('currency_fields')
        self.error = self.config.get('error')
        self.calls = []

    def methods(self):
        return {self.method: self.fetch}

    def labels(self):
        return {self.method: self.declared_labels}

    def currency_fields(self):
        if self.fields is not None:
            return list(self.fields)
        return super().currency_fields()

    def fetch(self, quoter, symbols):
        self.calls.append(list(symbols))
        if self.error is not None:
            raise self.error

        result = {}
        for symbol in symbols:
            if symbol in self.records:
                result[symbol] = dict(self.records[symbol])
            else:
                result[symbol] = {'success': False, 'errormsg': f"{self.name} does not know {symbol}"}
        return result


class FakeRateSource(ExchangeRateSource):
    """Rate source answering from a fixed table and recording every lookup."""

    def __init__(self, rates=None):
        self.rates = dict(rates or {})
        self.calls = []
        self.timeout = None
        self.closed = False

    def fetch_rate(self, from_currency, to_currency):
        self.calls.append((from_currency, to_currency))
        return self.rates.get((from_currency, to_currency))

    def set_timeout(self, timeout):
        self.timeout = timeout

    def close(self):
        self.closed = True


def make_adapter(name, records=None, method='test', labels=None, **extra):
    settings = {'name': name, 'method': method, 'records': records or {}}
    if labels is not None:
        settings['labels'] = labels
    settings.update(extra)
    return StaticAdapter(config=settings)


@pytest.fixture
def app_config(tmp_path, monkeypatch):
    """Configuration built from defaults only, unaffected by the environment."""
    for env_var in ConfigManager.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    return ConfigManager(str(tmp_path / 'config.yaml'))


@pytest.fixture
def rate_source():
    return FakeRateSource({
        ('USD', 'EUR'): 0.5,
        ('GBP', 'EUR'): 1.25,
    })
