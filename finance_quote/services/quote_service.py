"""Quote retrieval with failover across the adapters of a method.

For one fetch the dispatcher walks the bindings registered for the method
in load order. Each binding is handed the symbols that have not yet been
resolved; what it returns is merged into the result and, when a target
currency is set, converted with the binding's own currency field list.
"""

from typing import Any, Iterable, List, Optional, Sequence

from finance_quote.models.quote_models import AdapterBinding, QuoteSet
from finance_quote.registry import MethodRegistry
from finance_quote.services.currency_service import CurrencyConverter
from finance_quote.utils.exceptions import AdapterError, UnknownMethodError
from finance_quote.utils.logging import get_logger, get_operation_logger

logger = get_logger(__name__)


class FailoverDispatcher:
    """Runs fetch requests against a registry, failing over between bindings."""

    def __init__(self, registry: MethodRegistry, converter: Optional[CurrencyConverter] = None):
        """Initialize the dispatcher.

        Args:
            registry: Method registry to resolve bindings from
            converter: Currency converter; conversion is skipped without one
        """
        self.registry = registry
        self.converter = converter

    def fetch(
        self,
        session: Any,
        method: str,
        symbols: Sequence[str],
        required_labels: Iterable[str] = (),
        failover: bool = True,
        target_currency: Optional[str] = None
    ) -> QuoteSet:
        """Fetch quotes for ``symbols`` through ``method``.

        Adapter and conversion failures never propagate; they end up as
        ``success=False`` plus ``errormsg`` on the affected symbols. A method
        nobody implements fails every requested symbol the same way.

        Args:
            session: Object handed to every adapter call (normally the Quoter)
            method: Fetch method name, case-insensitive
            symbols: Symbols to look up; duplicates are allowed
            required_labels: Labels a binding must declare to be used
            failover: Whether to try later bindings for unresolved symbols
            target_currency: Currency to convert results into, if any

        Returns:
            Quote set with a record for every requested symbol
        """
        symbols = list(symbols)
        required_labels = list(required_labels)
        quotes = QuoteSet()

        try:
            bindings = self.registry.resolve(method)
        except UnknownMethodError as e:
            logger.error(str(e))
            for symbol in symbols:
                quotes.mark_failed(symbol, e.message)
            return quotes

        op_logger = get_operation_logger(__name__, f"fetch_{method.lower()}")
        op_logger.start(method=method, symbols=len(symbols), bindings=len(bindings))

        pending = list(symbols)
        invoked = 0

        for binding in bindings:
            if not pending:
                break

            if required_labels and not binding.provides(required_labels):
                missing = sorted(set(required_labels) - binding.labels)
                logger.debug(f"Skipping {binding.module} for {method}: missing labels {missing}")
                continue

            invoked += 1
            requested = list(pending)
            op_logger.progress(f"Querying {binding.module} for {len(requested)} symbol(s)")
            result = self._invoke(binding, session, method, requested)
            merged = self._merge(quotes, result)

            pending = [symbol for symbol in symbols if not quotes.is_success(symbol)]

            if target_currency and self.converter is not None:
                self.converter.convert(quotes, merged, binding.currency_fields, target_currency)

            if pending:
                logger.info(f"{binding.module} left {len(pending)} of {len(symbols)} symbol(s) "
                            f"unresolved for {method} (merged {len(merged)})")

            if not failover:
                break

        self._finalize(quotes, symbols, method, invoked)

        failed = [symbol for symbol in dict.fromkeys(symbols) if not quotes.is_success(symbol)]
        for symbol in failed:
            logger.warning(f"No quote for {symbol} via {method}: {quotes[symbol].get('errormsg')}")

        op_logger.finish(success=not failed, resolved=len(symbols) - len(failed), failed=len(failed))
        return quotes

    def _invoke(self, binding: AdapterBinding, session: Any, method: str, symbols: List[str]) -> QuoteSet:
        """Call one adapter, turning any exception into failed records."""
        try:
            raw = binding.function(session, list(symbols))
            return QuoteSet.coerce(raw)
        except Exception as e:
            # Adapter code is third-party; its failures are recorded per symbol
            error = AdapterError(
                f"{binding.module} failed to fetch {method} quotes: {str(e)}",
                method=method,
                module=binding.module,
                original_exception=e
            )
            logger.error(str(error))

            failed = QuoteSet()
            for symbol in symbols:
                failed.mark_failed(symbol, error.message)
            return failed

    @staticmethod
    def _merge(quotes: QuoteSet, result: QuoteSet) -> List[str]:
        """Merge ``result`` into ``quotes`` without downgrading resolved symbols.

        Returns:
            The symbols whose records were taken from ``result``
        """
        merged = []
        for symbol, record in result.items():
            if quotes.is_success(symbol):
                continue
            quotes[symbol] = dict(record)
            merged.append(symbol)
        return merged

    @staticmethod
    def _finalize(quotes: QuoteSet, symbols: List[str], method: str, invoked: int) -> None:
        """Make sure every requested symbol has ``success`` and, if failed, ``errormsg``."""
        for symbol in symbols:
            record = quotes.setdefault(symbol, {})
            if record.get('success'):
                record['success'] = True
                continue

            record['success'] = False
            if not record.get('errormsg'):
                if invoked:
                    record['errormsg'] = f"No quote returned for {symbol} by {method}"
                else:
                    record['errormsg'] = f"No {method} source provides the required labels"
