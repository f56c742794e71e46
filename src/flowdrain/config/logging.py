"""Structured logging configuration for FlowDrain."""

import logging
import sys
from typing import Any, Literal, TextIO

import structlog

from flowdrain.config.settings import get_settings

# Libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through stdlib logging.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` for one object per line, ``console`` for humans.
            Defaults to ``LOG_FORMAT``.
        stream: Destination. Defaults to stderr, keeping stdout for command
            output.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)
    log_format = format or settings.log_format
    stream = stream or sys.stderr

    # force: the CLI may be invoked more than once per process.
    logging.basicConfig(format="%(message)s", stream=stream, level=log_level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Logger for ``name`` with ``initial_values`` bound to every event."""
    return structlog.get_logger(name, **initial_values)
