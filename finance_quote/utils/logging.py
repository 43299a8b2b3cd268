"""Logging for the finance quote system.

Every module logs through :func:`get_logger`, which hangs its logger under the
``finance_quote`` hierarchy and wraps it so that key/value context (method,
module, symbol counts, ...) travels with each record. Fetches and rate lookups
are logged as operations with a start and a finish event.
"""

import logging
import logging.handlers
import os
import json
import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import threading

from .config import config

ROOT_LOGGER_NAME = 'finance_quote'
REDACTED_PARAMETERS = ('apikey', 'api_key', 'token')

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_SIZE_UNITS = {'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}


class StructuredFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': threading.current_thread().name,
            'process': os.getpid()
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        entry.update(getattr(record, 'extra_fields', {}))
        return json.dumps(entry, default=str)


class ContextualLogger:
    """Wraps a :class:`logging.Logger` and attaches persistent context to every record.

    Context set with :meth:`set_context` and any per-call ``extra`` mapping are
    merged and handed to the handlers as ``record.extra_fields``.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.context: Dict[str, Any] = {}

    def set_context(self, **kwargs):
        self.context.update(kwargs)

    def clear_context(self):
        self.context.clear()

    def log(self, level: int, msg: str, *args, **kwargs):
        fields = dict(self.context)
        fields.update(kwargs.pop('extra', None) or {})
        if fields:
            kwargs['extra'] = {'extra_fields': fields}
        self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


class OperationLogger:
    """Start, progress and finish events for one named operation, e.g. ``fetch_nasdaq``."""

    def __init__(self, logger: ContextualLogger, operation_name: str):
        self.logger = logger
        self.operation_name = operation_name
        self.start_time: Optional[datetime] = None

    def start(self, **context):
        self.start_time = datetime.now(timezone.utc)
        self.logger.set_context(
            operation=self.operation_name,
            operation_start=self.start_time.isoformat(),
            **context
        )
        self.logger.info(f"Starting operation: {self.operation_name}")

    def progress(self, message: str, **context):
        self.logger.set_context(**context)
        self.logger.info(f"[{self.operation_name}] {message}")

    def finish(self, success: bool = True, **context):
        """Log the end of the operation with its duration.

        Args:
            success: False when some part of the operation failed, e.g. a
                symbol that no source could resolve
            **context: Counts or other fields describing the outcome
        """
        end_time = datetime.now(timezone.utc)
        duration = (end_time - self.start_time).total_seconds() if self.start_time else 0.0

        self.logger.set_context(
            operation_end=end_time.isoformat(),
            operation_duration_seconds=duration,
            operation_success=success,
            **context
        )

        if success:
            self.logger.info(f"Completed operation: {self.operation_name} (Duration: {duration:.3f}s)")
        else:
            self.logger.warning(f"Operation finished with failures: {self.operation_name} "
                                f"(Duration: {duration:.3f}s)")


def _rotating_handler(path: str, level: int, formatter: logging.Formatter,
                      max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_file_size: Optional[str] = None,
    backup_count: Optional[int] = None,
    structured_logging: bool = False
) -> logging.Logger:
    """Configure handlers on the ``finance_quote`` logger.

    Arguments left unset fall back to the ``finance_quote.logging.*``
    settings. A console handler is always installed. With a log file, a
    rotating file handler is added along with a JSON error log next to it
    (``quotes.log`` -> ``quotes_errors.log``).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file; an empty string disables file logging
        max_file_size: Maximum log file size (e.g., '10MB')
        backup_count: Number of rotated files to keep
        structured_logging: Write the main log file as JSON lines

    Returns:
        The configured ``finance_quote`` logger
    """
    log_level = log_level or config.get('finance_quote.logging.level', 'INFO')
    if log_file is None:
        log_file = config.get('finance_quote.logging.file_path')
    max_file_size = max_file_size or config.get('finance_quote.logging.max_file_size', '10MB')
    if backup_count is None:
        backup_count = config.get('finance_quote.logging.backup_count', 5)
    structured_logging = structured_logging or config.get('finance_quote.logging.structured', False)
    level = getattr(logging, log_level.upper())

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if not log_file:
        return logger

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    max_bytes = _parse_file_size(max_file_size)
    if structured_logging:
        file_formatter: logging.Formatter = StructuredFormatter()
    else:
        file_formatter = logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)
    logger.addHandler(_rotating_handler(log_file, level, file_formatter, max_bytes, backup_count))

    stem, ext = os.path.splitext(log_file)
    logger.addHandler(_rotating_handler(f"{stem}_errors{ext or '.log'}", logging.ERROR,
                                        StructuredFormatter(), max_bytes, backup_count))
    return logger


def get_logger(name: str) -> ContextualLogger:
    """Contextual logger for ``name``, placed under the ``finance_quote`` hierarchy."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f'{ROOT_LOGGER_NAME}.'):
        name = f'{ROOT_LOGGER_NAME}.{name}'
    return ContextualLogger(logging.getLogger(name))


def get_operation_logger(name: str, operation_name: str) -> OperationLogger:
    return OperationLogger(get_logger(name), operation_name)


def log_api_call(
    logger: ContextualLogger,
    api_name: str,
    endpoint: str,
    parameters: Optional[Dict[str, Any]] = None,
    response_time: Optional[float] = None,
    status_code: Optional[int] = None,
    error: Optional[Exception] = None
):
    """Log one remote call, such as an exchange rate request.

    Credential-like parameters are redacted before they reach the log.

    Args:
        logger: Logger of the calling module
        api_name: Short name of the remote service
        endpoint: URL that was called
        parameters: Query parameters
        response_time: Seconds until the response arrived
        status_code: HTTP status code, if a response was received
        error: The failure, if the call failed
    """
    safe_parameters = {
        key: ('***' if key.lower() in REDACTED_PARAMETERS else value)
        for key, value in (parameters or {}).items()
    }
    logger.set_context(
        api_name=api_name,
        endpoint=endpoint,
        parameters=safe_parameters,
        response_time_seconds=response_time,
        status_code=status_code
    )

    if error:
        logger.warning(f"API call failed: {api_name} - {endpoint}: {error}")
    else:
        logger.debug(f"API call successful: {api_name} - {endpoint}")


def _parse_file_size(size_str: str) -> int:
    """Convert a size such as ``'10MB'`` or ``'512kb'`` to bytes; a bare number is bytes."""
    size_str = size_str.upper().strip()
    for suffix, multiplier in _SIZE_UNITS.items():
        if size_str.endswith(suffix):
            return int(size_str[:-len(suffix)]) * multiplier
    return int(size_str)
