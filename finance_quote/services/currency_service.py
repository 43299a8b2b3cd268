"""Currency conversion of quote records.

Exchange rates are looked up once per currency pair and kept for the
lifetime of the owning quoter. Rates are never refreshed within a session,
so a long-lived quoter will keep using the rate it saw first.
"""

import re
import threading
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from finance_quote.models.quote_models import QuoteSet
from finance_quote.services.exchange_rate_service import ExchangeRateSource
from finance_quote.utils.exceptions import CurrencyConversionError
from finance_quote.utils.logging import get_logger
from finance_quote.utils.normalizers import scale_field

logger = get_logger(__name__)

CONVERSION_FAILED_MESSAGE = "Currency conversion failed."

_AMOUNT_PREFIX = re.compile(r'^\s*(\d*\.?\d*)\s*')

RateKey = Tuple[str, str]


class ConversionCache:
    """Session-scoped (from, to) -> rate table.

    Lookups for the same pair are serialised so a miss triggers exactly one
    remote fetch even when several threads convert at once. Failed lookups
    are cached as ``None`` as well.
    """

    def __init__(self):
        self._rates: Dict[RateKey, Optional[float]] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[RateKey, threading.Lock] = {}

    def get_or_fetch(self, key: RateKey, fetch: Callable[[], Optional[float]]) -> Optional[float]:
        """Return the cached rate for ``key``, calling ``fetch`` on the first miss."""
        with self._lock:
            if key in self._rates:
                return self._rates[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._rates:
                    return self._rates[key]

            rate = fetch()

            with self._lock:
                self._rates[key] = rate
            return rate

    def get(self, key: RateKey) -> Optional[float]:
        with self._lock:
            return self._rates.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._rates

    def __len__(self) -> int:
        with self._lock:
            return len(self._rates)


class CurrencyConverter:
    """Rescales currency-denominated quote fields into a target currency."""

    def __init__(self, rate_source: ExchangeRateSource, cache: Optional[ConversionCache] = None):
        """Initialize the converter.

        Args:
            rate_source: Where exchange rates come from
            cache: Rate cache; a fresh one is created when omitted
        """
        self.rate_source = rate_source
        self.cache = cache if cache is not None else ConversionCache()

    def exchange_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Rate for one ``from_currency`` unit in ``to_currency``, cached per pair.

        Returns:
            The rate, or None if it could not be obtained
        """
        from_currency = from_currency.strip().upper()
        to_currency = to_currency.strip().upper()
        if from_currency == to_currency:
            return 1.0

        return self.cache.get_or_fetch(
            (from_currency, to_currency),
            lambda: self._fetch_rate(from_currency, to_currency)
        )

    def _fetch_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        logger.debug(f"Looking up exchange rate {from_currency} -> {to_currency}")
        try:
            rate = self.rate_source.fetch_rate(from_currency, to_currency)
        except Exception:
            # Any exception from a rate source counts as a missing rate
            logger.exception(f"Rate source raised while pricing {from_currency} in {to_currency}")
            return None

        if rate is None:
            logger.warning(f"No exchange rate available for {from_currency} -> {to_currency}")
        return rate

    def currency(self, source_amount: str, to_currency: str) -> Optional[float]:
        """Convert an amount with a currency code into another currency.

        ``source_amount`` may carry a leading amount ("15.95 USD"); it defaults
        to 1. Converting a currency into itself returns the amount without
        any lookup.

        Args:
            source_amount: Amount and currency code, or just a currency code
            to_currency: Target currency code

        Returns:
            The converted amount, or None when no rate is available
        """
        if not source_amount or not to_currency:
            return None

        match = _AMOUNT_PREFIX.match(source_amount)
        amount_text = match.group(1)
        amount = float(amount_text) if amount_text.strip('.') else 1.0
        from_currency = source_amount[match.end():].strip().upper()
        to_currency = to_currency.strip().upper()

        if from_currency == to_currency:
            return amount

        rate = self.exchange_rate(from_currency, to_currency)
        if rate is None:
            return None
        return rate * amount

    def convert(
        self,
        quotes: QuoteSet,
        symbols: Iterable[str],
        fields: Iterable[str],
        target_currency: Optional[str]
    ) -> None:
        """Rewrite ``fields`` of each symbol's record into ``target_currency`` in place.

        Symbols without a ``currency`` label are left alone, as are the fields
        of symbols already in the target currency. A symbol whose rate cannot
        be obtained is marked ``success=False`` with
        ``errormsg="Currency conversion failed."``; its fields are kept
        unconverted.

        Args:
            quotes: Quote set to modify
            symbols: Symbols to convert
            fields: Labels holding currency amounts
            target_currency: Currency to convert into; nothing happens when empty
        """
        if not target_currency:
            return
        target_currency = target_currency.upper()
        fields = tuple(fields)

        for symbol in dict.fromkeys(symbols):
            record = quotes.get(symbol)
            if not record:
                continue

            currency = record.get('currency')
            if not currency:
                continue
            if str(currency).upper() == target_currency:
                record['currency'] = target_currency
                continue

            rate = self.exchange_rate(str(currency), target_currency)
            if not rate:
                error = CurrencyConversionError(
                    CONVERSION_FAILED_MESSAGE,
                    symbol=symbol,
                    from_currency=str(currency),
                    to_currency=target_currency
                )
                logger.warning(str(error))
                quotes.mark_failed(symbol, CONVERSION_FAILED_MESSAGE)
                continue

            for field in fields:
                if record.get(field) is None:
                    continue
                record[field] = self._rescale(record[field], rate)

            record['currency'] = target_currency

    @staticmethod
    def _rescale(value: Any, rate: float) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(Decimal(str(value)) * Decimal(str(rate)))
        return scale_field(value, rate)
