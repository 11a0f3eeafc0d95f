"""
Structured Logging Configuration
================================

structlog events for a verification run. Everything is written to stderr:
stdout is reserved for the report, so a text report can be diffed between
runs while the logs carry the timings.
"""

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import Processor

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    Route structlog and stdlib logging through one stderr handler.

    Args:
        level: Log level (default: LOG_LEVEL, else WARNING)
        json_format: One JSON object per line instead of console output
            (default: LOG_FORMAT=json)
    """
    log_level = (level or os.getenv("LOG_LEVEL") or "WARNING").upper()
    if log_level not in _LEVELS:
        log_level = "WARNING"
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # The OTLP exporter retries noisily when no collector is listening.
    logging.getLogger("opentelemetry").setLevel(max(root_logger.level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Structured logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind key/value pairs to every subsequent event in this context.

    The runner binds ``document`` and ``run_id`` here for a whole run.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def block_context(index: int, line: int) -> Iterator[None]:
    """Tag events emitted while a block executes with its index and source line."""
    with structlog.contextvars.bound_contextvars(block=index, line=line):
        yield
