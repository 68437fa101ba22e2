"""
Logging configuration for propacq
Console output is coloured by level, and any bound context (strategy,
provider, batch size...) is appended to the line as key=value pairs.
"""

import functools
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import colorama
from colorama import Fore, Style

# Initialize colorama for Windows support
colorama.init()

LOG_COLORS = {
    'DEBUG': Fore.CYAN,
    'INFO': Fore.GREEN,
    'WARNING': Fore.YELLOW,
    'ERROR': Fore.RED,
    'CRITICAL': Fore.MAGENTA
}

CONSOLE_FORMAT = "%(timestamp)s [%(levelname)s] %(name)s: %(message)s%(context)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s%(context)s"
LOG_FILE_NAME = "propacq.log"

_loggers: Dict[str, "StructuredLogger"] = {}


def render_context(context: Dict[str, Any]) -> str:
    if not context:
        return ""
    return " [" + " ".join(f"{k}={v}" for k, v in sorted(context.items())) + "]"


class ContextFilter(logging.Filter):
    """Guarantees every record carries a rendered ``context`` field"""

    def filter(self, record):
        if not hasattr(record, 'context'):
            record.context = ""
        if not hasattr(record, 'timestamp'):
            record.timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return True


class ColoredFormatter(logging.Formatter):
    """Console formatter with per-level colors"""

    def __init__(self, fmt=None, datefmt=None, use_colors=True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record):
        if not self.use_colors or record.levelname not in LOG_COLORS:
            return super().format(record)

        # Restore the plain fields afterwards; other handlers share the record
        levelname, name = record.levelname, record.name
        record.levelname = f"{LOG_COLORS[levelname]}{levelname}{Style.RESET_ALL}"
        record.name = f"{Fore.BLUE}{name}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


class StructuredLogger:
    """
    Logger wrapper that injects context into every record

    Context keys are set as record attributes (so ``caplog`` and custom
    handlers can read them) and rendered onto the formatted line.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self.context = dict(context or {})

    def add_context(self, **kwargs):
        """Add persistent context to all log messages"""
        self.context.update(kwargs)

    def clear_context(self):
        self.context = {}

    def bind(self, **kwargs) -> "StructuredLogger":
        """Child logger with extra context; the parent is left untouched"""
        return StructuredLogger(self.logger, {**self.context, **kwargs})

    def _log(self, level, msg, *args, **kwargs):
        extra = dict(self.context)
        extra.update(kwargs.get('extra') or {})
        extra['context'] = render_context(self.context)
        kwargs['extra'] = extra
        getattr(self.logger, level)(msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self._log('debug', msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._log('info', msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._log('warning', msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._log('error', msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._log('critical', msg, *args, **kwargs)


def setup_logger(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    use_colors: bool = True
) -> StructuredLogger:
    """
    Set up a logger with console and optional file output

    Args:
        name: Logger name (usually __name__)
        level: Log level, falls back to config.system.log_level
        log_file: File path; defaults to logs/propacq.log when LOG_TO_FILE is set
        use_colors: Whether to use colored console output

    Returns:
        StructuredLogger instance
    """
    from ..config.settings import get_config

    system = get_config().system
    if level is None:
        level = system.log_level
    if log_file is None and system.log_to_file:
        log_file = system.logs_dir / LOG_FILE_NAME

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.addFilter(ContextFilter())
    console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.addFilter(ContextFilter())
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    # caplog listens on the root logger
    logger.propagate = True

    return StructuredLogger(logger)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a logger instance"""
    if name not in _loggers:
        _loggers[name] = setup_logger(name)
    return _loggers[name]


def log_async_performance(logger: Optional[StructuredLogger] = None, slow_ms: Optional[float] = None):
    """
    Decorator that logs the duration of a coroutine

    Completion is logged at INFO, or at WARNING when it took longer than
    ``slow_ms``. Failures are logged with their duration and re-raised.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            nonlocal logger
            if logger is None:
                logger = get_logger(func.__module__)

            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"{func.__name__} failed after {duration_ms:.0f}ms: {e}",
                    extra={'duration_ms': int(duration_ms)},
                    exc_info=True
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            if slow_ms is not None and duration_ms > slow_ms:
                logger.warning(
                    f"{func.__name__} slow: {duration_ms:.0f}ms (threshold {slow_ms:.0f}ms)",
                    extra={'duration_ms': int(duration_ms)}
                )
            else:
                logger.info(
                    f"{func.__name__} completed in {duration_ms:.0f}ms",
                    extra={'duration_ms': int(duration_ms)}
                )
            return result

        return wrapper
    return decorator
