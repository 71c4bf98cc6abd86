"""
Structured Logging
==================
structlog configuration for the assignment engine, the bulk tool, the
signup workflow and the auditor. Every write emits one event with
key/value context so admin actions can be traced after the fact.

Usage:
    from hubrota.utils.structured_logging import get_structured_logger

    log = get_structured_logger("hubrota.engine")
    log.info("assignees_added", rota_id="r1", added=2)

    with request_context(channel="guest", source="203.0.113.7"):
        ...  # every event logged here carries channel and source
"""
import logging
import sys
from contextlib import contextmanager
from typing import IO, Any, Iterator, List, Optional

import structlog


def _processors(json_output: bool) -> List[Any]:
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if json_output:
        return shared + [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return shared + [
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]


def configure_structlog(json_output: bool = False, level: str = "DEBUG", stream: Optional[IO] = None) -> None:
    """
    Configure structlog for the application.

    Events go to stderr so command output on stdout stays parseable.

    Args:
        json_output: One JSON object per event (production) instead of
            the console renderer (development)
        level: Minimum level emitted
        stream: Destination (defaults to stderr)
    """
    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.DEBUG)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_structured_logger(name: str) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (e.g., "hubrota.signup")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind context variables for all subsequent log calls (e.g. request_id="abc123")."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def request_context(**kwargs) -> Iterator[None]:
    """Bind context for the duration of one request, restoring the previous values after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
