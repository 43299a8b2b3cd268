"""Tests for the method registry and adapter catalog."""

import pytest

from finance_quote.adapters.base_adapter import QuoteAdapter
from finance_quote.adapters.catalog import (
    register_adapter, unregister_adapter, get_adapter_class, available_adapters
)
from finance_quote.models.quote_models import AdapterBinding, DEFAULT_CURRENCY_FIELDS
from finance_quote.registry import MethodRegistry
from finance_quote.utils.exceptions import ConfigurationError, UnknownMethodError

from conftest import make_adapter


class ConfiguredAdapter(QuoteAdapter):
    """Adapter exposing its configuration through a method."""

    name = 'configured'

    def methods(self):
        return {'europe': self.europe, 'nasdaq': self.nasdaq}

    def labels(self):
        return {'europe': ['price', 'currency'], 'nasdaq': ['price', 'eps']}

    def currency_fields(self):
        return ['price', 'last', 'price']

    def europe(self, quoter, symbols):
        return {}

    def nasdaq(self, quoter, symbols):
        return {}


class ModuleLike:
    """Adapter interface without subclassing QuoteAdapter."""

    name = 'moduleLike'

    @staticmethod
    def methods():
        return {'fund': lambda quoter, symbols: {}}

    @staticmethod
    def labels():
        return {'fund': ['nav']}


@pytest.fixture
def registry():
    return MethodRegistry()


class TestMethodRegistry:
    """Test cases for MethodRegistry."""

    def test_load_adapter_class_registers_each_method(self, registry):
        assert registry.load_module(ConfiguredAdapter) is True

        assert sorted(registry.methods()) == ['europe', 'nasdaq']
        europe, = registry.resolve('europe')
        assert europe.labels == frozenset({'price', 'currency'})
        assert europe.module == 'configured'

    def test_currency_fields_deduplicated_in_order(self, registry):
        registry.load_module(ConfiguredAdapter)

        binding, = registry.resolve('nasdaq')
        assert binding.currency_fields == ('price', 'last')

    def test_module_config_passed_case_insensitively(self, registry):
        registry.load_module(ConfiguredAdapter, {'CONFIGURED': {'API_KEY': 'k'}})

        assert registry.get_module('configured').config == {'API_KEY': 'k'}

    def test_module_loaded_once(self, registry):
        assert registry.load_module(ConfiguredAdapter) is True
        assert registry.load_module(ConfiguredAdapter) is False

        assert len(registry.resolve('europe')) == 1
        assert registry.loaded_modules() == ['configured']

    def test_bindings_kept_in_load_order(self, registry):
        first = make_adapter('first')
        second = make_adapter('second')
        registry.load_module(first)
        registry.load_module(second)

        assert [b.module for b in registry.resolve('test')] == ['first', 'second']

    def test_duck_typed_module_gets_default_currency_fields(self, registry):
        registry.load_module(ModuleLike)

        binding, = registry.resolve('fund')
        assert binding.currency_fields == DEFAULT_CURRENCY_FIELDS

    def test_load_by_import_path(self, registry):
        registry.load_module('conftest:StaticAdapter')

        assert 'test' in registry
        assert registry.loaded_modules() == ['static']

    def test_resolve_is_case_insensitive(self, registry):
        registry.load_module(ConfiguredAdapter)
        assert registry.resolve('EUROPE') == registry.resolve('europe')

    def test_unknown_method(self, registry):
        with pytest.raises(UnknownMethodError) as exc_info:
            registry.resolve('nowhere')

        assert exc_info.value.message == 'Undefined fetch-method nowhere'
        assert exc_info.value.error_code == 'UNKNOWN_METHOD'

    def test_unknown_module_name(self, registry):
        with pytest.raises(ConfigurationError):
            registry.load_module('NoSuchModule')

    def test_unimportable_module_path(self, registry):
        with pytest.raises(ConfigurationError):
            registry.load_module('no_such_package.quotes')

    def test_object_without_adapter_interface(self, registry):
        with pytest.raises(ConfigurationError):
            registry.load_module(object())

    def test_register_appends_binding(self, registry):
        binding = AdapterBinding(function=lambda q, s: {}, module='manual')
        registry.register('Custom', binding)

        assert registry.resolve('custom') == (binding,)


class TestAdapterCatalog:
    """Test cases for the adapter catalog."""

    def test_register_and_lookup(self):
        @register_adapter
        class CatalogAdapter(ConfiguredAdapter):
            name = 'CatalogTest'

        try:
            assert get_adapter_class('catalogtest') is CatalogAdapter
            assert 'CatalogTest' in available_adapters()
        finally:
            unregister_adapter('CatalogTest')

        assert get_adapter_class('catalogtest') is None

    def test_registry_loads_catalog_name(self, registry):
        @register_adapter
        class CatalogAdapter(ConfiguredAdapter):
            name = 'CatalogByName'

        try:
            registry.load_module('catalogbyname')
            assert registry.loaded_modules() == ['CatalogByName']
        finally:
            unregister_adapter('CatalogByName')
