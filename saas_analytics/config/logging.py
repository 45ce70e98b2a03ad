"""
Logging Configuration for the SaaS Analytics Pipeline

structlog events are rendered by a stdlib handler so that library loggers and
pipeline loggers share one output stream. Pipeline runs bind their snapshot
version into the context so every stage log line can be traced to a run.
"""

import logging
import sys
from typing import Any, List, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from saas_analytics.config.settings import get_settings

LOG_FORMATS = ("json", "console")


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str):
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format '{log_format}', expected one of {LOG_FORMATS}")
    if log_format == "json":
        return JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog and stdlib logging through a single handler.

    Args:
        log_level: Override level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override renderer, "json" or "console"
        stream: Output stream, stdout by default
    """
    monitoring = get_settings().monitoring
    level = (log_level or monitoring.log_level).upper()
    log_format = (log_format or monitoring.log_format).lower()
    numeric_level = getattr(logging, level, logging.INFO)

    processors = _shared_processors()
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ProcessorFormatter(
        processor=_renderer(log_format),
        foreign_pre_chain=processors,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    structlog.get_logger(__name__).debug("Logging configured", level=level, format=log_format)


def run_context(**values: Any):
    """
    Attach key/values (e.g. snapshot version) to every log line inside the block.

    Only the given keys are removed on exit; context bound by the caller survives.
    """
    return structlog.contextvars.bound_contextvars(**values)
