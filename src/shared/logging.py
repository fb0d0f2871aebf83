"""Structured logging for the Context Manager router.

Everything is written to stderr. In stdio mode stdout belongs to the MCP
protocol stream, and a stray log line there corrupts it.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor


def _processors(json_output: bool, colors: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))
    return processors


def setup_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO = sys.stderr
) -> None:
    """
    Configure structlog and the standard library loggers used by mcp,
    uvicorn and httpx.

    Args:
        log_level: Minimum log level name
        json_output: Render JSON lines instead of console output
        stream: Destination stream
    """
    level = getattr(logging, log_level.upper())

    structlog.configure(
        processors=_processors(json_output, colors=stream.isatty()),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=stream, level=level)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**context: Any) -> None:
    """Attach key-values to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
