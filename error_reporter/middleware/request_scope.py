# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Entry stage: one InterceptionScope per request.

Must run before any downstream handler, so it is installed outermost of the
reporter's middleware. Everything downstream (including tasks started through
``error_reporter.spawn``) sees the request's scope.
"""

from typing import TYPE_CHECKING, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..models import ErrorOrigin, RequestMeta

if TYPE_CHECKING:
    from ..client import ErrorReporter

logger = structlog.get_logger(__name__)


def build_request_meta(request: Request) -> RequestMeta:
    """Snapshot the parts of a live request that go into a notice."""
    route = request.scope.get("route")
    return RequestMeta(
        method=request.method,
        path=request.url.path,
        url=str(request.url),
        query_params=dict(request.query_params),
        headers=dict(request.headers),
        client_ip=request.client.host if request.client else None,
        route=getattr(route, "path", None),
    )


class RequestScopeMiddleware(BaseHTTPMiddleware):
    """Establishes the InterceptionScope for each inbound request."""

    def __init__(self, app: ASGIApp, reporter: "ErrorReporter"):
        super().__init__(app)
        self._reporter = reporter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._reporter.is_excluded(request.url.path):
            return await call_next(request)

        try:
            scope = self._reporter.create_scope(
                ErrorOrigin.REQUEST,
                request_meta=build_request_meta(request),
            )
        except Exception as e:
            # Request proceeds unattributed
            logger.warning("request_scope_setup_failed", path=request.url.path, error=str(e))
            return await call_next(request)

        request.state.error_reporter_scope = scope
        try:
            with scope.activate():
                return await call_next(request)
        finally:
            scope.release()
