"""
Application Logger

Shared logging setup for the JLPT backend: the ``jlpt`` application logger,
a JSON formatter for log shipping, a context-carrying adapter and a timing
decorator for sync and async callables.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import asyncio
from typing import Dict, Any, Optional, Tuple, Type, Union, Callable, TypeVar

from jlpt_backend.config import settings

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_LOGGER_NAME = "jlpt"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Render log records as one JSON object per line.

    Context bound through :class:`LoggerAdapter` ends up in ``record.data``
    and is merged into the top level of the object.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        *,
        indent: Optional[int] = None
    ):
        super().__init__(fmt, datefmt)
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            log_object["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        if hasattr(record, 'data') and isinstance(record.data, dict):
            log_object.update(record.data)

        return json.dumps(log_object, indent=self.indent, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and optional file handlers.

    Args:
        name: Logger name
        level: Log level name or number
        format_string: Format used when ``use_json`` is off
        date_format: Date format used when ``use_json`` is off
        use_json: Emit records through :class:`JsonFormatter`
        log_file: Path of a log file to append to
        console_output: Attach a stdout handler

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches a context dict to every record.

    Used to tag log lines with user, test and attempt ids so that one
    session can be followed across modules.
    """

    def __init__(
        self,
        logger: logging.Logger,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs = kwargs.copy()
        extra = dict(kwargs.get('extra') or {})
        data = dict(extra.get('data') or {})
        if self.extra:
            data.update(self.extra)
        extra['data'] = data
        kwargs['extra'] = extra

        if self.extra:
            context = " ".join(f"{k}={v}" for k, v in self.extra.items())
            msg = f"{msg} [{context}]"
        return msg, kwargs

    def with_context(self, **context) -> 'LoggerAdapter':
        """Return a new adapter with ``context`` merged over the current one."""
        new_context = dict(self.extra)
        new_context.update(context)
        return LoggerAdapter(self.logger, new_context)


def get_app_logger() -> logging.Logger:
    """Return the application logger, configuring it from settings once."""
    logger = logging.getLogger(APP_LOGGER_NAME)

    if not logger.handlers:
        return configure_logger(
            name=APP_LOGGER_NAME,
            level=settings.LOG_LEVEL,
            use_json=settings.LOG_JSON,
            log_file=settings.LOG_FILE,
            console_output=True
        )

    return logger


app_logger = get_app_logger()


def log_execution_time(
    logger: Optional[logging.Logger] = None,
    expected: Tuple[Type[BaseException], ...] = ()
) -> Callable[[F], F]:
    """
    Decorator logging how long the wrapped callable took.

    Success is logged at DEBUG, failure at ERROR; the exception is re-raised.
    Exceptions listed in ``expected`` are left to the caller's own error
    logging and only noted at DEBUG. Works for both plain functions and
    coroutine functions.
    """
    def log_failure(func: Callable[..., Any], start_time: float, error: Exception) -> None:
        level = logging.DEBUG if isinstance(error, expected) else logging.ERROR
        (logger or get_app_logger()).log(
            level,
            f"{func.__name__} failed after {time.perf_counter() - start_time:.3f}s: {error}"
        )

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_failure(func, start_time, e)
                raise
            (logger or get_app_logger()).debug(
                f"{func.__name__} executed in {time.perf_counter() - start_time:.3f}s"
            )
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log_failure(func, start_time, e)
                raise
            (logger or get_app_logger()).debug(
                f"{func.__name__} executed in {time.perf_counter() - start_time:.3f}s"
            )
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper
    return decorator
