# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Reporter client.

One ``ErrorReporter`` per process, created with ``create_reporter`` and
passed explicitly to the adapters that need it.
"""

from typing import Any, Callable, Optional

import structlog
from starlette.middleware import Middleware
from starlette.types import ASGIApp

from .config import ReporterSettings, get_settings
from .invocation import wrap
from .metrics import MetricsEmitter
from .middleware import ErrorCaptureMiddleware, RequestMetricsMiddleware, RequestScopeMiddleware
from .models import ErrorContext, ErrorOrigin
from .notifier import BeforeNotifyHook, Notifier
from .scope import DeferredErrorCallback, InterceptionScope, current_scope
from .transport import HttpTransport, Transport

logger = structlog.get_logger(__name__)


class ErrorReporter:
    """
    Facade over the Notifier, Metrics Emitter and adapters.

    Configuration is read-only after construction; the only mutable
    process-wide state is the process context used outside any scope.
    """

    def __init__(self, settings: ReporterSettings, transport: Transport):
        self.settings = settings
        self.transport = transport
        self.notifier = Notifier(settings, transport)
        self.metrics = MetricsEmitter(settings, transport)
        self._process_context: dict[str, Any] = {}

    # =========================================================================
    # Errors
    # =========================================================================

    def notify(
        self,
        error: BaseException,
        *,
        context: Optional[dict[str, Any]] = None,
        origin: ErrorOrigin = ErrorOrigin.MANUAL,
    ) -> None:
        """Report an exception from application code.

        Inside a request or invocation the notice is attributed to that
        scope; the same exception object is only reported once per scope.
        """
        try:
            scope = current_scope()
            if scope is not None:
                error_context = scope.capture(error, extra_context=context)
                if error_context is None:
                    return
            else:
                error_context = ErrorContext(
                    error=error,
                    origin=origin,
                    context={**self._process_context, **(context or {})},
                )
        except Exception as e:
            logger.warning("notify_capture_failed", error=str(e))
            return
        self.notifier.notify(error_context)

    def notify_context(self, error_context: ErrorContext) -> None:
        self.notifier.notify(error_context)

    def before_notify(self, hook: BeforeNotifyHook) -> BeforeNotifyHook:
        return self.notifier.before_notify(hook)

    # =========================================================================
    # Context
    # =========================================================================

    @property
    def process_context(self) -> dict[str, Any]:
        """Copy of the context applied outside any scope."""
        return dict(self._process_context)

    def set_context(self, **values: Any) -> None:
        """Attach values to notices from the current scope (or the process)."""
        scope = current_scope()
        if scope is not None:
            scope.set_context(**values)
        else:
            self._process_context.update(values)

    def reset_context(self) -> None:
        scope = current_scope()
        if scope is not None:
            scope.reset_context()
        else:
            self._process_context.clear()

    def create_scope(
        self,
        origin: ErrorOrigin,
        **kwargs: Any,
    ) -> InterceptionScope:
        """New scope owned by the caller, seeded with the process context."""
        scope = InterceptionScope(origin, self.notifier, **kwargs)
        scope.set_context(**self._process_context)
        return scope

    # =========================================================================
    # Metrics
    # =========================================================================

    def timing(self, name: str, value: float) -> None:
        self.metrics.timing(name, value)

    def increment(self, name: str, value: float = 1) -> None:
        self.metrics.increment(name, value)

    # =========================================================================
    # Adapters
    # =========================================================================

    def wrap(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Wrap a function entrypoint; see ``error_reporter.invocation``."""
        return wrap(handler, self)

    def is_excluded(self, path: str) -> bool:
        return any(path.startswith(exclude) for exclude in self.settings.exclude_paths)

    @property
    def request_handler(self) -> Middleware:
        return Middleware(RequestScopeMiddleware, reporter=self)

    @property
    def error_handler(self) -> Middleware:
        return Middleware(ErrorCaptureMiddleware, reporter=self)

    @property
    def metrics_handler(self) -> Middleware:
        return Middleware(RequestMetricsMiddleware, reporter=self)

    @property
    def middleware(self) -> list[Middleware]:
        """All three stages, outermost first, for ``FastAPI(middleware=...)``."""
        return [self.request_handler, self.metrics_handler, self.error_handler]

    def install(self, app: ASGIApp) -> None:
        """Add all three stages to an app (entry stage outermost)."""
        # add_middleware prepends: last added runs first
        app.add_middleware(ErrorCaptureMiddleware, reporter=self)
        app.add_middleware(RequestMetricsMiddleware, reporter=self)
        app.add_middleware(RequestScopeMiddleware, reporter=self)
        logger.info("error_reporter_middleware_installed", environment=self.settings.environment)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def flush(self) -> None:
        """Wait for pending notice and metric deliveries."""
        await self.notifier.flush()
        await self.metrics.flush()

    async def aclose(self) -> None:
        await self.flush()
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()


def create_reporter(
    settings: Optional[ReporterSettings] = None,
    *,
    transport: Optional[Transport] = None,
    **overrides: Any,
) -> ErrorReporter:
    """Create a reporter with injected configuration.

    Keyword overrides take precedence over ``settings`` and the environment:

        reporter = create_reporter(api_key="...", environment="staging")
    """
    if settings is None:
        settings = ReporterSettings(**overrides) if overrides else get_settings()
    elif overrides:
        settings = settings.model_copy(update=overrides)

    if transport is None:
        transport = HttpTransport(settings)

    if not settings.should_report:
        logger.info(
            "error_reporter_inactive",
            enabled=settings.enabled,
            has_api_key=bool(settings.api_key),
            environment=settings.environment,
        )

    return ErrorReporter(settings, transport)
