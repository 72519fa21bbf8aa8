"""Request middleware adapter."""

from .error_capture import ErrorCaptureMiddleware
from .metrics import RequestMetricsMiddleware
from .request_scope import RequestScopeMiddleware, build_request_meta

__all__ = [
    # Entry stage
    "RequestScopeMiddleware",
    "build_request_meta",
    # Error-interception stage
    "ErrorCaptureMiddleware",
    # Completion stage
    "RequestMetricsMiddleware",
]
