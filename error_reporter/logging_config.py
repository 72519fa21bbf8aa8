# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Structured logging for the reporter.

The reporter only ever calls ``structlog.get_logger``, so hosts that already
configure structlog get its events in their own pipeline. ``configure_logging``
is for hosts that don't: it routes the ``error_reporter`` logger tree to
stdout as JSON (or console output) without touching the root logger.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from . import __version__
from .config import ReporterSettings, get_settings
from .scope import current_scope

REPORTER_LOGGER = "error_reporter"
QUIET_LOGGERS = ("httpx", "httpcore")


def add_reporter_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag entries emitted by the reporter with its version."""
    if str(event_dict.get("logger", "")).startswith(REPORTER_LOGGER):
        event_dict.setdefault("reporter_version", __version__)
    return event_dict


def add_scope_origin(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Name the boundary (request / invocation) a log line was emitted under."""
    scope = current_scope()
    if scope is not None:
        event_dict.setdefault("scope_origin", scope.origin.value)
    return event_dict


def reporter_processors() -> list[Any]:
    """Processor chain shared by structlog and foreign (stdlib) records."""
    return [
        structlog.contextvars.merge_contextvars,  # scope_id
        add_scope_origin,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_reporter_context,
    ]


def _renderer(settings: ReporterSettings) -> Any:
    if settings.log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def _stdout_handler(settings: ReporterSettings, processors: list[Any]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )
    return handler


def configure_logging(settings: ReporterSettings | None = None) -> None:
    """Send reporter logs to stdout at ``settings.log_level``."""
    settings = settings or get_settings()
    processors = reporter_processors()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    reporter_logger = logging.getLogger(REPORTER_LOGGER)
    reporter_logger.handlers.clear()
    reporter_logger.addHandler(_stdout_handler(settings, processors))
    reporter_logger.setLevel(settings.log_level.upper())
    reporter_logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
