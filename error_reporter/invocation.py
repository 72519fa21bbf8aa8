# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Invocation Handler Adapter.

Wraps a single function entrypoint (a serverless handler, a job runner
callable) so its failures are reported before the caller learns about them.

Per invocation: idle -> running -> completed-ok, or
running -> error captured and reported -> re-raised / signalled.
"""

import functools
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

import structlog

from .models import ErrorOrigin, InvocationArgs
from .scope import InterceptionScope

if TYPE_CHECKING:
    from .client import ErrorReporter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CallbackSignal:
    """Current convention: a trailing ``callback(error)`` argument.

    Only used for deferred errors. When the handler itself returned normally
    the runtime has already seen the invocation complete, so it may observe a
    second completion through this callback.
    """

    callback: Callable[..., Any]

    def signal(self, error: BaseException) -> Any:
        return self.callback(error)


@dataclass(frozen=True)
class ContextFailSignal:
    """Legacy convention: a context argument exposing ``fail(error)``."""

    context: Any

    def signal(self, error: BaseException) -> Any:
        return self.context.fail(error)


FailureSignal = Union[CallbackSignal, ContextFailSignal]


def detect_failure_signal(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Optional[FailureSignal]:
    """Find how the runtime wants to be told about a failure, if at all.

    The first positional argument is the event/payload and is never treated
    as a signal. Returns None when no mechanism is present.
    """
    trailing = list(args[1:])
    for name in ("context", "callback"):
        if name in kwargs:
            trailing.append(kwargs[name])

    for candidate in reversed(trailing):
        if callable(getattr(candidate, "fail", None)):
            return ContextFailSignal(candidate)

    if trailing and inspect.isroutine(trailing[-1]):
        return CallbackSignal(trailing[-1])

    return None


def _invoke_signal(signal: Optional[FailureSignal], error: BaseException) -> None:
    if signal is None:
        return
    try:
        signal.signal(error)
    except Exception as e:
        logger.warning("failure_signal_failed", signal=type(signal).__name__, error=str(e))


class InvocationWrapper:
    """Builds the per-call scope and applies the reporting rules."""

    def __init__(self, handler: Callable[..., Any], reporter: "ErrorReporter"):
        self.handler = handler
        self.reporter = reporter
        self.handler_name = getattr(handler, "__qualname__", repr(handler))

    def open_scope(
        self,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        signal: Optional[FailureSignal],
    ) -> Optional[InterceptionScope]:
        try:
            return self.reporter.create_scope(
                ErrorOrigin.INVOCATION,
                invocation_args=InvocationArgs(args=args, kwargs=kwargs, handler=self.handler_name),
                on_deferred_error=signal.signal if signal is not None else None,
            )
        except Exception as e:
            logger.warning("invocation_scope_setup_failed", handler=self.handler_name, error=str(e))
            return None

    def report_sync_failure(
        self,
        scope: InterceptionScope,
        signal: Optional[FailureSignal],
        error: BaseException,
    ) -> None:
        try:
            if isinstance(signal, ContextFailSignal):
                # fail() runs once delivery was attempted
                scope.report_then(error, signal.signal)
            else:
                scope.report(error)
        except Exception as e:
            logger.warning("invocation_capture_failed", handler=self.handler_name, error=str(e))

    async def report_async_failure(
        self,
        scope: InterceptionScope,
        signal: Optional[FailureSignal],
        error: BaseException,
    ) -> None:
        try:
            reported = await scope.report_async(error)
        except Exception as e:
            logger.warning("invocation_capture_failed", handler=self.handler_name, error=str(e))
            return
        if reported and isinstance(signal, ContextFailSignal):
            _invoke_signal(signal, error)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        signal = detect_failure_signal(args, kwargs)
        scope = self.open_scope(args, kwargs, signal)
        if scope is None:
            return self.handler(*args, **kwargs)

        try:
            with scope.activate():
                return self.handler(*args, **kwargs)
        except Exception as error:
            self.report_sync_failure(scope, signal, error)
            raise
        finally:
            scope.release()

    async def call_async(self, *args: Any, **kwargs: Any) -> Any:
        signal = detect_failure_signal(args, kwargs)
        scope = self.open_scope(args, kwargs, signal)
        if scope is None:
            return await self.handler(*args, **kwargs)

        try:
            with scope.activate():
                result = await self.handler(*args, **kwargs)
            # Declared end-of-life: everything the handler started has settled
            await scope.drain()
        except Exception as error:
            await self.report_async_failure(scope, signal, error)
            raise
        finally:
            scope.release()

        deferred = scope.deferred_errors
        if deferred and signal is None:
            raise deferred[0]
        return result


def wrap(handler: Callable[..., Any], reporter: "ErrorReporter") -> Callable[..., Any]:
    """Return a handler with the same call signature that reports failures.

    Works for plain functions and coroutine functions. All arguments are
    forwarded unchanged.
    """
    wrapper = InvocationWrapper(handler, reporter)

    if inspect.iscoroutinefunction(handler):
        @functools.wraps(handler)
        async def async_wrapped(*args: Any, **kwargs: Any) -> Any:
            return await wrapper.call_async(*args, **kwargs)

        return async_wrapped

    @functools.wraps(handler)
    def wrapped(*args: Any, **kwargs: Any) -> Any:
        return wrapper(*args, **kwargs)

    return wrapped
