# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Interception scopes.

A scope is the attribution boundary for one unit of work: one HTTP request or
one wrapped invocation. The active scope travels in a ContextVar, which
asyncio copies into every task and callback scheduled while it is set, so
concurrent requests interleaving on the same loop each see their own scope.

Deferred work started through ``InterceptionScope.spawn`` / ``call_later``
(or the module-level ``spawn`` / ``call_later``, which pick up the current
scope) is tracked: when it fails, the error is captured and reported against
the scope that scheduled it, even after the scope itself was released.
Without a running event loop, ``call_later`` runs on a tracked daemon timer
thread instead, with the same capture and reporting.
"""

import asyncio
import contextvars
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Coroutine, Iterator, Optional, Union

import structlog

from .models import ErrorContext, ErrorOrigin, InvocationArgs, RequestMeta
from .notifier import Notifier

logger = structlog.get_logger(__name__)

_current_scope: contextvars.ContextVar[Optional["InterceptionScope"]] = contextvars.ContextVar(
    "error_reporter_scope", default=None
)

DeferredErrorCallback = Callable[[BaseException], Any]


class InterceptionScope:
    """Attribution boundary for one request or invocation.

    Attributes:
        id: Short unique identifier, bound into log context while active
        origin: Boundary type (request or invocation)
        context: User-supplied values attached to every notice from this scope
    """

    def __init__(
        self,
        origin: ErrorOrigin,
        notifier: Notifier,
        *,
        request_meta: Optional[RequestMeta] = None,
        invocation_args: Optional[InvocationArgs] = None,
        on_deferred_error: Optional[DeferredErrorCallback] = None,
    ):
        self.id = uuid.uuid4().hex[:12]
        self.origin = origin
        self.request_meta = request_meta
        self.invocation_args = invocation_args
        self.context: dict[str, Any] = {}
        self.active = False
        self.released = False
        self._notifier = notifier
        self._on_deferred_error = on_deferred_error
        self._captured: list[BaseException] = []
        self._deferred_errors: list[BaseException] = []
        self._pending: set[asyncio.Task] = set()
        self._threads: set[threading.Thread] = set()

    def __repr__(self) -> str:
        return f"InterceptionScope(id={self.id!r}, origin={self.origin.value!r})"

    @property
    def deferred_errors(self) -> list[BaseException]:
        """Errors raised by deferred work, in the order they were captured."""
        return list(self._deferred_errors)

    @property
    def pending(self) -> int:
        return len(self._pending) + len(self._threads)

    @contextmanager
    def activate(self) -> Iterator["InterceptionScope"]:
        """Make this scope current for the enclosed block."""
        token = _current_scope.set(self)
        self.active = True
        try:
            with structlog.contextvars.bound_contextvars(scope_id=self.id):
                yield self
        finally:
            self.active = False
            _current_scope.reset(token)

    def release(self) -> None:
        """Declare the unit of work complete.

        Deferred work still running keeps reporting against this scope.
        """
        self.released = True
        logger.debug("scope_released", scope_id=self.id, pending=len(self._pending))

    def set_context(self, **values: Any) -> None:
        self.context.update(values)

    def reset_context(self) -> None:
        self.context.clear()

    def capture(
        self,
        error: BaseException,
        extra_context: Optional[dict[str, Any]] = None,
    ) -> Optional[ErrorContext]:
        """Snapshot an error for reporting.

        Returns None if this exact exception object was already captured by
        this scope; distinct exceptions are always captured.
        """
        if any(seen is error for seen in self._captured):
            return None
        self._captured.append(error)
        return ErrorContext(
            error=error,
            origin=self.origin,
            request_meta=self.request_meta,
            invocation_args=self.invocation_args,
            context={**self.context, **(extra_context or {})},
            scope_id=self.id,
        )

    def report(self, error: BaseException) -> bool:
        """Capture and notify (fire-and-forget). False if already reported."""
        error_context = self.capture(error)
        if error_context is None:
            return False
        self._notifier.notify(error_context)
        return True

    async def report_async(self, error: BaseException) -> bool:
        """Capture, notify and wait for the delivery attempt."""
        error_context = self.capture(error)
        if error_context is None:
            return False
        await self._notifier.notify_async(error_context)
        return True

    def _context_for_task(self) -> contextvars.Context:
        ctx = contextvars.copy_context()
        ctx.run(_current_scope.set, self)
        return ctx

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> asyncio.Task:
        """Run ``coro`` as a background task attributed to this scope.

        Requires a running event loop; synchronous code uses ``call_later``.
        """
        loop = asyncio.get_running_loop()
        task = loop.create_task(coro, name=name, context=self._context_for_task())
        self._track(task, self._on_task_done)
        return task

    def call_later(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
    ) -> Union[asyncio.Task, threading.Timer]:
        """Run a plain callback after ``delay`` seconds, attributed to this scope.

        Inside an event loop the callback runs as a task on that loop;
        otherwise it runs on a daemon timer thread.
        """
        name = getattr(callback, "__name__", None)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return self._start_timer(delay, callback, args, name)
        return self.spawn(_run_later(delay, callback, args), name=name)

    def _start_timer(
        self,
        delay: float,
        callback: Callable[..., Any],
        args: tuple[Any, ...],
        name: Optional[str],
    ) -> threading.Timer:
        ctx = self._context_for_task()
        timer = threading.Timer(delay, ctx.run, args=(self._run_in_thread, callback, args, name))
        timer.daemon = True
        self._threads.add(timer)
        timer.start()
        return timer

    def _run_in_thread(self, callback: Callable[..., Any], args: tuple[Any, ...], name: Optional[str]) -> None:
        try:
            callback(*args)
        except Exception as error:
            error_context = self._capture_deferred(error, name)
            if error_context is not None:
                self._notifier.notify(error_context)
                self._signal_deferred(error)
        finally:
            self._threads.discard(threading.current_thread())

    def _track(self, task: asyncio.Task, on_done: Callable[[asyncio.Task], None]) -> None:
        self._pending.add(task)
        task.add_done_callback(on_done)

    def _capture_deferred(self, error: BaseException, name: Optional[str]) -> Optional[ErrorContext]:
        error_context = self.capture(error)
        if error_context is None:
            return None
        self._deferred_errors.append(error)
        logger.info(
            "deferred_error_captured",
            scope_id=self.id,
            origin=self.origin.value,
            error_class=type(error).__name__,
            task=name,
        )
        return error_context

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        error_context = self._capture_deferred(error, task.get_name())
        if error_context is None:
            return
        report = task.get_loop().create_task(self._notify_then(error, error_context, self._on_deferred_error))
        self._track(report, self._pending.discard)

    def report_then(self, error: BaseException, after: DeferredErrorCallback) -> bool:
        """Capture and notify, then call ``after(error)`` once delivery was attempted.

        Inside an event loop both steps run in a tracked task and this returns
        immediately. False if the error was already reported by this scope.
        """
        error_context = self.capture(error)
        if error_context is None:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._notifier.notify(error_context)
            _call_signal(after, error, self.id)
            return True

        task = loop.create_task(self._notify_then(error, error_context, after))
        self._track(task, self._pending.discard)
        return True

    async def _notify_then(
        self,
        error: BaseException,
        error_context: ErrorContext,
        after: Optional[DeferredErrorCallback],
    ) -> None:
        await self._notifier.notify_async(error_context)
        if after is None:
            return
        try:
            result = after(error)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning("deferred_error_callback_failed", scope_id=self.id, error=str(e))

    def _signal_deferred(self, error: BaseException) -> None:
        if self._on_deferred_error is not None:
            _call_signal(self._on_deferred_error, error, self.id)

    def join(self, timeout: Optional[float] = None) -> None:
        """Block until deferred work running on timer threads has finished."""
        for timer in list(self._threads):
            timer.join(timeout)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until all deferred work (and its reports) has finished."""
        async def _wait() -> None:
            while self._pending or self._threads:
                if self._pending:
                    await asyncio.wait(set(self._pending))
                for timer in list(self._threads):
                    await asyncio.to_thread(timer.join)

        if timeout is None:
            await _wait()
        else:
            await asyncio.wait_for(_wait(), timeout)


def _call_signal(callback: DeferredErrorCallback, error: BaseException, scope_id: str) -> None:
    """Run a failure callback outside any event loop."""
    try:
        result = callback(error)
        if asyncio.iscoroutine(result):
            asyncio.run(result)
    except Exception as e:
        logger.warning("deferred_error_callback_failed", scope_id=scope_id, error=str(e))


async def _run_later(delay: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
    await asyncio.sleep(delay)
    callback(*args)


def current_scope() -> Optional[InterceptionScope]:
    """Return the scope active in the current context, if any."""
    return _current_scope.get()


def scope_for_task(task: asyncio.Task) -> Optional[InterceptionScope]:
    """Return the scope a task was created under, if any."""
    return task.get_context().get(_current_scope)


def spawn(coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> asyncio.Task:
    """Create a task attributed to the current scope (plain task without one)."""
    scope = current_scope()
    if scope is None:
        return asyncio.get_running_loop().create_task(coro, name=name)
    return scope.spawn(coro, name=name)


def call_later(delay: float, callback: Callable[..., Any], *args: Any) -> Union[asyncio.Task, threading.Timer]:
    """Schedule a callback attributed to the current scope.

    Works with or without a running event loop.
    """
    scope = current_scope()
    if scope is not None:
        return scope.call_later(delay, callback, *args)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        timer = threading.Timer(delay, callback, args=args)
        timer.daemon = True
        timer.start()
        return timer
    return loop.create_task(_run_later(delay, callback, args))
