# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Process-level hooks for errors no adapter caught.

``install_excepthook`` reports exceptions about to terminate the interpreter;
``install_asyncio_handler`` reports exceptions the event loop could not hand
to anyone (failed tasks nobody awaited, crashing callbacks). A failed task
created while a scope was active is attributed to that scope.
"""

import asyncio
import sys
from types import TracebackType
from typing import TYPE_CHECKING, Any, Callable, Optional

import structlog

from .models import ErrorOrigin
from .scope import scope_for_task

if TYPE_CHECKING:
    from .client import ErrorReporter

logger = structlog.get_logger(__name__)

ExceptHook = Callable[[type[BaseException], BaseException, Optional[TracebackType]], Any]
LoopHandler = Callable[[asyncio.AbstractEventLoop, dict[str, Any]], Any]

_previous_excepthook: Optional[ExceptHook] = None


def install_excepthook(reporter: "ErrorReporter") -> None:
    """Report uncaught exceptions, then defer to the previous hook."""
    global _previous_excepthook
    if _previous_excepthook is not None:
        uninstall_excepthook()

    previous = sys.excepthook

    def _excepthook(
        exc_type: type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            try:
                reporter.notify(exc, origin=ErrorOrigin.UNCAUGHT)
            except Exception as e:
                logger.warning("excepthook_report_failed", error=str(e))
        previous(exc_type, exc, tb)

    _previous_excepthook = previous
    sys.excepthook = _excepthook
    logger.info("excepthook_installed")


def uninstall_excepthook() -> None:
    """Restore the hook that was active before ``install_excepthook``."""
    global _previous_excepthook
    if _previous_excepthook is None:
        return
    sys.excepthook = _previous_excepthook
    _previous_excepthook = None


def install_asyncio_handler(
    reporter: "ErrorReporter",
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Optional[LoopHandler]:
    """Install a loop exception handler that reports before delegating.

    Returns the handler that was previously installed (None for the default).
    """
    loop = loop or asyncio.get_running_loop()
    previous = loop.get_exception_handler()

    def _handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception")
        if isinstance(error, Exception):
            try:
                _report_loop_error(reporter, error, context)
            except Exception as e:
                logger.warning("loop_error_report_failed", error=str(e))

        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    loop.set_exception_handler(_handler)
    return previous


def _report_loop_error(reporter: "ErrorReporter", error: Exception, context: dict[str, Any]) -> None:
    task = context.get("task") or context.get("future")
    scope = scope_for_task(task) if isinstance(task, asyncio.Task) else None
    if scope is not None:
        scope.report(error)
        return

    reporter.notify(
        error,
        origin=ErrorOrigin.UNCAUGHT,
        context={"asyncio_message": context.get("message")},
    )
