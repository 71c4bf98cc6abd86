"""
Hub Rota Logging
================
Standard-library logging for the rota tools: a console handler, an optional
rotating file, a TRACE level for call tracing and a helper for slot
decisions.

Levels:
    TRACE (5): Function entry/exit with arguments
    DEBUG (10): Per-candidate slot decisions
    INFO (20): Assignments written, bulk runs, audit summaries
    WARNING (30): Write retries, integrity violations
    ERROR (40): Storage failures, exceptions
"""
import functools
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Callable, Optional

# Custom TRACE level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ROOT_LOGGER = "hubrota"

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-7s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter with ANSI colors when writing to a terminal."""

    COLORS = {
        TRACE: "\033[90m",             # Gray
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: Optional[str] = None, stream: Optional[IO] = None):
        super().__init__(fmt, datefmt=datefmt)
        self._tty = bool(stream is not None and getattr(stream, "isatty", lambda: False)())

    def format(self, record):
        message = super().format(record)
        color = self.COLORS.get(record.levelno)
        return f"{color}{message}{self.RESET}" if self._tty and color else message


def _level(name: Optional[str], default: int = logging.INFO) -> int:
    if not name:
        return default
    if name.upper() == "TRACE":
        return TRACE
    return getattr(logging, name.upper(), default)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_level: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 3,
    stream: Optional[IO] = None,
) -> logging.Logger:
    """
    Configure the ``hubrota`` logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Minimum level written to the log file
        log_file: Path to log file (None = console only)
        console_level: Console level (defaults to ``level``)
        max_bytes: Size at which the file is rotated
        backup_count: Rotated files kept
        stream: Console stream (defaults to stdout)

    Returns:
        The ``hubrota`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(TRACE)  # Handlers do the filtering
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream = stream or sys.stdout
    console = logging.StreamHandler(stream)
    console.setLevel(_level(console_level or level))
    console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S", stream=stream))
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        file_handler.setLevel(_level(level))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    logger.debug(f"Logging ready (console={logging.getLevelName(console.level)}, file={log_file or 'off'})")
    return logger


def setup_from_config(config, console_level: Optional[str] = None, stream: Optional[IO] = None) -> logging.Logger:
    """``setup_logging`` driven by a ``HubConfig``."""
    return setup_logging(
        level=config.log_level,
        log_file=config.log_file,
        console_level=console_level,
        stream=stream,
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger under the ``hubrota`` hierarchy (e.g. ``hubrota.engine``)."""
    return logging.getLogger(name)


def _short(value, limit: int) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def log_function_call(func: Callable) -> Callable:
    """
    Trace calls at TRACE level; exceptions are logged at ERROR and re-raised.

    Usage:
        @log_function_call
        def bulk_assign_by_pattern(self, ...):
            ...
    """
    logger = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        name = func.__name__
        if logger.isEnabledFor(TRACE):
            shown = [_short(a, 50) for a in args[:3]]
            shown += [f"{k}={_short(v, 30)}" for k, v in list(kwargs.items())[:3]]
            logger.log(TRACE, f"→ {name}({', '.join(shown)})")
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"✖ {name} raised: {type(e).__name__}: {e}")
            raise
        logger.log(TRACE, f"← {name} returned: {_short(result, 100)}")
        return result

    return wrapper


def log_decision(
    logger: logging.Logger,
    rota_id: str,
    occurrence_id: Optional[str],
    who: str,
    outcome: str,
    level: int = logging.DEBUG,
) -> None:
    """
    Log one slot decision, e.g. ``[added] tea@occ-1: c-12``.

    Args:
        logger: Logger to use
        rota_id: Rota the candidate was considered for
        occurrence_id: Target occurrence (None for a template-wide slot)
        who: Candidate description
        outcome: ``added`` or the reason it was skipped
        level: Log level
    """
    logger.log(level, f"[{outcome}] {rota_id}@{occurrence_id or '*'}: {who}")
