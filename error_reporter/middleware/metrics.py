# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Completion stage: one timing event per finished request."""

import time
from typing import TYPE_CHECKING, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

if TYPE_CHECKING:
    from ..client import ErrorReporter


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Emits ``<request_metric_prefix>.<status>`` timings (e.g. ``app.request.404``)."""

    def __init__(self, app: ASGIApp, reporter: "ErrorReporter"):
        super().__init__(app)
        self._reporter = reporter

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """Process request and emit the outcome timing."""
        if self._reporter.is_excluded(request.url.path):
            return await call_next(request)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self._reporter.metrics.timing(
                f"{self._reporter.settings.request_metric_prefix}.{status_code}",
                duration_ms,
            )

        return response
