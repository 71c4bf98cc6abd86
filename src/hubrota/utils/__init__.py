"""Utilities package for Hub Rota."""
from .dates import format_uk, is_upcoming, last_day_of_month, parse_datetime, to_date, today
from .logging_setup import (
    TRACE,
    get_logger,
    log_decision,
    log_function_call,
    setup_from_config,
    setup_logging,
)
from .structured_logging import (
    bind_context,
    clear_context,
    configure_structlog,
    get_structured_logger,
    request_context,
)

__all__ = [
    "setup_logging",
    "setup_from_config",
    "get_logger",
    "log_function_call",
    "log_decision",
    "TRACE",
    "configure_structlog",
    "get_structured_logger",
    "bind_context",
    "clear_context",
    "request_context",
    "parse_datetime",
    "to_date",
    "today",
    "is_upcoming",
    "last_day_of_month",
    "format_uk",
]
