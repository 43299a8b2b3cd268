"""Data models for quote records and adapter bindings.

A quote set maps each symbol to its own record, a mapping from label
(``price``, ``currency``, ``success`` ...) to value.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

DEFAULT_CURRENCY_FIELDS: Tuple[str, ...] = (
    'last', 'high', 'low', 'net', 'bid', 'ask', 'close', 'open',
    'day_range', 'year_range', 'eps', 'div', 'cap', 'nav', 'price',
)

STANDARD_LABELS: Dict[str, str] = {
    'name': 'Company or Mutual Fund Name',
    'last': 'Last Price',
    'high': 'Highest trade today',
    'low': 'Lowest trade today',
    'date': 'Last Trade Date (MM/DD/YYYY)',
    'isodate': 'Last Trade Date (YYYY-MM-DD)',
    'time': 'Last Trade Time',
    'net': 'Net Change',
    'p_change': "Percent Change from previous day's close",
    'volume': 'Volume',
    'avg_vol': 'Average Daily Vol',
    'bid': 'Bid',
    'ask': 'Ask',
    'close': 'Previous Close',
    'open': "Today's Open",
    'day_range': "Day's Range",
    'year_range': '52-Week Range',
    'eps': 'Earnings per Share',
    'pe': 'P/E Ratio',
    'div_date': 'Dividend Pay Date',
    'div': 'Dividend per Share',
    'div_yield': 'Dividend Yield',
    'cap': 'Market Capitalization',
    'ex_div': 'Ex-Dividend Date',
    'nav': 'Net Asset Value',
    'yield': 'Yield (usually 30 day avg)',
    'exchange': 'The exchange the information was obtained from',
    'currency': 'Currency code of the price fields',
    'success': 'Did the symbol successfully return information?',
    'errormsg': 'If success is false, the reason why',
    'method': 'The method which found this information',
    'type': 'The type of security returned',
}

QuoteFunction = Callable[[Any, List[str]], Mapping]


@dataclass(frozen=True)
class AdapterBinding:
    """One adapter's implementation of a fetch method plus its metadata."""
    function: QuoteFunction
    labels: FrozenSet[str] = frozenset()
    currency_fields: Tuple[str, ...] = DEFAULT_CURRENCY_FIELDS
    module: str = ''

    def provides(self, required_labels: Iterable[str]) -> bool:
        """True if this binding declares every label in ``required_labels``."""
        return all(label in self.labels for label in required_labels)


class QuoteSet(dict):
    """Quotes keyed by symbol, each a ``dict`` of label -> value."""

    @classmethod
    def coerce(cls, raw: Optional[Mapping]) -> 'QuoteSet':
        """Build a quote set from either the nested or the flat form.

        The flat form is keyed by ``(symbol, label)`` tuples.
        """
        if raw is None:
            return cls()
        if isinstance(raw, QuoteSet):
            return raw
        if raw and all(isinstance(key, tuple) and len(key) == 2 for key in raw):
            return cls.from_flat(raw)

        quotes = cls()
        for symbol, record in raw.items():
            if not isinstance(record, Mapping):
                raise TypeError(f"Quote record for {symbol!r} must be a mapping, got {type(record).__name__}")
            quotes[symbol] = dict(record)
        return quotes

    @classmethod
    def from_flat(cls, flat: Mapping[Tuple[str, str], Any]) -> 'QuoteSet':
        quotes = cls()
        for (symbol, label), value in flat.items():
            quotes.setdefault(symbol, {})[label] = value
        return quotes

    def flatten(self) -> Dict[Tuple[str, str], Any]:
        """Return the ``{(symbol, label): value}`` view of this quote set."""
        return {
            (symbol, label): value
            for symbol, record in self.items()
            for label, value in record.items()
        }

    def is_success(self, symbol: str) -> bool:
        return bool(self.get(symbol, {}).get('success'))

    def mark_failed(self, symbol: str, message: str) -> None:
        record = self.setdefault(symbol, {})
        record['success'] = False
        record['errormsg'] = message

    def successful(self) -> List[str]:
        return [symbol for symbol in self if self.is_success(symbol)]

    def failed(self) -> List[str]:
        return [symbol for symbol in self if not self.is_success(symbol)]

    def to_frame(self) -> pd.DataFrame:
        """Tabular view with one row per symbol and one column per label."""
        frame = pd.DataFrame.from_dict(dict(self), orient='index')
        frame.index.name = 'symbol'
        return frame
