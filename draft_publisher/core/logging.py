"""Structured logging configuration."""

import contextlib
import logging
import sys
import uuid
from pathlib import Path
from typing import Iterator

import structlog

from .config import Settings, settings as default_settings

# Client libraries whose request-level chatter drowns the pipeline events.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "botocore", "boto3", "urllib3", "filelock")


def configure_logging(level: str | None = None, config: Settings | None = None) -> None:
    """Configure structured logging for a CLI invocation.

    Logs go to stderr so command output on stdout stays clean. ``level``
    overrides ``LOG_LEVEL``; third-party clients are held at WARNING unless
    running at DEBUG.
    """
    config = config or default_settings
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(log_level if log_level <= logging.DEBUG else logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.is_production:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextlib.contextmanager
def run_context(draft: Path) -> Iterator[str]:
    """Bind ``draft`` and a fresh ``run_id`` to every event logged inside."""
    run_id = uuid.uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(draft=str(draft), run_id=run_id):
        yield run_id


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
