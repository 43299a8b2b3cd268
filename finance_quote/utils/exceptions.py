"""Custom exceptions for the finance quote system."""

import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class FinanceQuoteError(Exception):
    """Base exception for finance quote errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        """Initialize the exception with enhanced error information.

        Args:
            message: Human-readable error message
            error_code: Unique error code for categorization
            context: Additional context information
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)
        self.traceback_str = traceback.format_exc() if original_exception else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
            'original_exception': str(self.original_exception) if self.original_exception else None,
            'traceback': self.traceback_str
        }

    def __str__(self) -> str:
        base_msg = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" (Context: {context_str})"
        return base_msg


class UnknownMethodError(FinanceQuoteError):
    """Raised when a fetch method has no registered adapter binding."""

    def __init__(self, message: str, method: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if method:
            context['method'] = method
        self.method = method

        super().__init__(
            message,
            error_code="UNKNOWN_METHOD",
            context=context,
            **kwargs
        )


class AdapterError(FinanceQuoteError):
    """Raised by (or on behalf of) an adapter that could not produce quotes.

    The dispatcher records these in-band as ``success=False`` and
    ``errormsg`` on the affected symbols.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        method: Optional[str] = None,
        module: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if symbol:
            context['symbol'] = symbol
        if method:
            context['method'] = method
        if module:
            context['module'] = module

        super().__init__(
            message,
            error_code="ADAPTER_ERROR",
            context=context,
            **kwargs
        )


class NetworkError(FinanceQuoteError):
    """Raised when network-related errors occur."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if url:
            context['url'] = url
        if status_code:
            context['status_code'] = status_code
        self.status_code = status_code

        super().__init__(
            message,
            error_code=kwargs.pop('error_code', "NETWORK_ERROR"),
            context=context,
            **kwargs
        )


class RateLimitError(NetworkError):
    """Raised when a remote API reports that its rate limit was exceeded."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if retry_after:
            context['retry_after'] = retry_after

        super().__init__(
            message,
            error_code="RATE_LIMIT_ERROR",
            context=context,
            **kwargs
        )


class RateUnavailableError(FinanceQuoteError):
    """Raised inside the rate source when no usable exchange rate exists."""

    def __init__(
        self,
        message: str,
        from_currency: Optional[str] = None,
        to_currency: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if from_currency:
            context['from_currency'] = from_currency
        if to_currency:
            context['to_currency'] = to_currency

        super().__init__(
            message,
            error_code="RATE_UNAVAILABLE",
            context=context,
            **kwargs
        )


class CurrencyConversionError(FinanceQuoteError):
    """Describes a symbol whose fields could not be converted."""

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        from_currency: Optional[str] = None,
        to_currency: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if symbol:
            context['symbol'] = symbol
        if from_currency:
            context['from_currency'] = from_currency
        if to_currency:
            context['to_currency'] = to_currency

        super().__init__(
            message,
            error_code="CURRENCY_CONVERSION_FAILED",
            context=context,
            **kwargs
        )


class InvalidParameterError(FinanceQuoteError):
    """Raised when a configuration key or lookup constraint is not recognized."""

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if parameter:
            context['parameter'] = parameter
        if value is not None:
            context['value'] = repr(value)
        self.parameter = parameter

        super().__init__(
            message,
            error_code="INVALID_PARAMETER",
            context=context,
            **kwargs
        )


class ConfigurationError(FinanceQuoteError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key
        if config_file:
            context['config_file'] = config_file

        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            **kwargs
        )
