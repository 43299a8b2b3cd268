"""Base adapter interface for quote sources.

Every data source plugs into the quoter through this interface: it tells the
registry which fetch methods it implements, which labels each method can
produce and which of its fields are denominated in the quote's currency.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional

from finance_quote.models.quote_models import DEFAULT_CURRENCY_FIELDS
from finance_quote.utils.logging import get_logger

logger = get_logger(__name__)

# (quoter, symbols) -> {symbol: {label: value}}
QuoteMethod = Callable[[Any, List[str]], Mapping]


class QuoteAdapter(ABC):
    """Base interface for quote source adapters.

    Subclasses set ``name`` and implement :meth:`methods` and :meth:`labels`.
    A quote method receives the calling quoter (for timeout, HTTP client and
    date helpers) and the list of symbols still to be resolved, and returns a
    mapping of symbol to record. Records it cannot resolve should carry
    ``success=False`` and an ``errormsg``.
    """

    name: str = ''

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize the adapter.

        Args:
            config: Module-specific configuration passed to the quoter
        """
        self.name = self.name or self.__class__.__name__
        self.config = config or {}
        self.logger = get_logger(f"{__name__}.{self.name}")
        self._initialize_adapter()

    def _initialize_adapter(self) -> None:
        """Hook for adapter-specific setup."""
        pass

    @abstractmethod
    def methods(self) -> Dict[str, QuoteMethod]:
        """Map each fetch method this adapter implements to its callable."""
        pass

    @abstractmethod
    def labels(self) -> Dict[str, List[str]]:
        """Map each fetch method to the labels it can produce."""
        pass

    def currency_fields(self) -> List[str]:
        """Labels whose values are rescaled during currency conversion."""
        return list(DEFAULT_CURRENCY_FIELDS)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', methods={sorted(self.methods())})"
