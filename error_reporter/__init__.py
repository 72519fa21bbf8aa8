"""
Error Reporter

Captures errors raised inside web requests and function invocations and
delivers them, with request metrics, to a remote collector.

    reporter = create_reporter(api_key="...")
    app = FastAPI(middleware=reporter.middleware)

    @reporter.wrap
    def handler(event, context): ...
"""

__version__ = "0.1.0"

from .client import ErrorReporter, create_reporter
from .config import ReporterSettings, get_settings
from .errors import ConfigurationError, ReporterError, TransportError
from .invocation import wrap
from .logging_config import configure_logging
from .middleware import ErrorCaptureMiddleware, RequestMetricsMiddleware, RequestScopeMiddleware
from .models import ErrorContext, ErrorOrigin, MetricEvent, Notice
from .scope import InterceptionScope, call_later, current_scope, spawn
from .transport import HttpTransport, Transport, TransportOutcome
from .uncaught import install_asyncio_handler, install_excepthook, uninstall_excepthook

__all__ = [
    # Client
    "ErrorReporter",
    "create_reporter",
    "ReporterSettings",
    "get_settings",
    "configure_logging",
    # Errors
    "ReporterError",
    "ConfigurationError",
    "TransportError",
    # Models
    "ErrorContext",
    "ErrorOrigin",
    "MetricEvent",
    "Notice",
    # Scopes
    "InterceptionScope",
    "current_scope",
    "spawn",
    "call_later",
    # Adapters
    "wrap",
    "RequestScopeMiddleware",
    "ErrorCaptureMiddleware",
    "RequestMetricsMiddleware",
    "install_excepthook",
    "uninstall_excepthook",
    "install_asyncio_handler",
    # Transport
    "Transport",
    "HttpTransport",
    "TransportOutcome",
]
