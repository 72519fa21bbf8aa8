# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Error-interception stage

Reports any exception surfacing from downstream, then re-raises the same
exception object so the host's own error handling (exception handlers,
ServerErrorMiddleware, the ASGI server) runs exactly as without it.
"""

from typing import TYPE_CHECKING, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..models import ErrorContext, ErrorOrigin
from ..scope import current_scope
from .request_scope import build_request_meta

if TYPE_CHECKING:
    from ..client import ErrorReporter

logger = structlog.get_logger(__name__)


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """
    Middleware reporting unhandled request exceptions.

    Does NOT handle the exception: it is always re-raised unchanged.
    HTTPException and other errors already turned into responses by
    exception handlers never reach this stage.
    """

    def __init__(self, app: ASGIApp, reporter: "ErrorReporter"):
        super().__init__(app)
        self._reporter = reporter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            self._capture(request, exc)
            raise

    def _capture(self, request: Request, exc: Exception) -> None:
        """Report the exception; internal faults are logged, never raised."""
        try:
            scope = current_scope()
            if scope is not None and scope.origin == ErrorOrigin.REQUEST:
                scope.report(exc)
                return

            # No entry stage installed (or path excluded from it)
            self._reporter.notifier.notify(
                ErrorContext(
                    error=exc,
                    origin=ErrorOrigin.REQUEST,
                    request_meta=build_request_meta(request),
                    context=self._reporter.process_context,
                )
            )
        except Exception as capture_error:
            logger.warning(
                "request_error_capture_failed",
                path=request.url.path,
                error=str(capture_error),
            )
