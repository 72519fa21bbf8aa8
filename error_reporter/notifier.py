# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Notifier

Turns an ErrorContext into a Notice and hands it to the transport.
Delivery is attempted but never blocks on the collector's answer from the
caller's point of view, and never raises into the host application.
"""

import os
from typing import Any, Callable, Optional

import structlog
from prometheus_client import Counter

from . import __version__
from .config import ReporterSettings, get_settings
from .delivery import Dispatcher
from .masking import filter_headers, filter_params, filter_url, headers_to_cgi_data
from .models import (
    ErrorContext,
    Notice,
    NoticeError,
    NoticeRequest,
    NoticeServer,
    NotifierInfo,
)
from .transport import Transport

logger = structlog.get_logger(__name__)
prefix = get_settings().metrics_prefix

NOTICES_SKIPPED_TOTAL = Counter(
    f"{prefix}_notices_skipped_total",
    "Notices not sent to the collector",
    ["reason"],  # disabled, no_api_key, development, hook, build_failed
)

BeforeNotifyHook = Callable[[Notice], Optional[bool]]

MAX_VALUE_LENGTH = 1024


def _to_jsonable(value: Any, depth: int = 0) -> Any:
    """Best-effort conversion of arbitrary values into JSON-friendly data."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value[:MAX_VALUE_LENGTH]
    if depth >= 5:
        return repr(value)[:MAX_VALUE_LENGTH]
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_jsonable(v, depth + 1) for v in value]
    return repr(value)[:MAX_VALUE_LENGTH]


class Notifier(Dispatcher):
    """
    Builds and submits notices.

    Stateless per call: each notify() builds a fresh Notice from the given
    ErrorContext, so concurrent reports never share payload state.
    """

    channel = "notice"

    def __init__(self, settings: ReporterSettings, transport: Transport):
        super().__init__(settings, transport)
        self._hooks: list[BeforeNotifyHook] = []

    def before_notify(self, hook: BeforeNotifyHook) -> BeforeNotifyHook:
        """Register a hook run on every Notice before delivery.

        A hook may modify the Notice in place; returning ``False`` drops it.
        Usable as a decorator.
        """
        self._hooks.append(hook)
        return hook

    def build_notice(self, context: ErrorContext) -> Notice:
        """Build the wire payload for one captured error."""
        settings = self._settings

        return Notice(
            api_key=settings.api_key,
            notifier=NotifierInfo(version=__version__),
            error=NoticeError.from_exception(context.error),
            request=self._build_request(context),
            server=NoticeServer(
                environment_name=settings.environment,
                hostname=settings.resolved_hostname,
                project_root=settings.resolved_project_root,
                pid=os.getpid(),
            ),
            origin=context.origin,
            scope_id=context.scope_id,
            timestamp=context.captured_at,
        )

    def _build_request(self, context: ErrorContext) -> NoticeRequest:
        filters = self._settings.filters
        user_context, _ = filter_params(_to_jsonable(context.context), filters)

        meta = context.request_meta
        if meta is not None:
            params, _ = filter_params(_to_jsonable(meta.query_params), filters)
            headers, _ = filter_headers(meta.headers, self._settings.sensitive_headers)
            cgi_data = headers_to_cgi_data(headers)
            cgi_data["REQUEST_METHOD"] = meta.method
            if meta.client_ip:
                cgi_data["REMOTE_ADDR"] = meta.client_ip
            return NoticeRequest(
                url=filter_url(meta.url) if meta.url else meta.path,
                component=meta.route or meta.path,
                action=meta.method,
                params=params,
                cgi_data=cgi_data,
                context=user_context,
            )

        invocation = context.invocation_args
        if invocation is not None:
            params, _ = filter_params(
                {
                    "args": _to_jsonable(invocation.args),
                    "kwargs": _to_jsonable(invocation.kwargs),
                },
                filters,
            )
            return NoticeRequest(
                component=invocation.handler,
                action="invoke",
                params=params,
                context=user_context,
            )

        return NoticeRequest(context=user_context)

    def _prepare(self, context: ErrorContext) -> Optional[Notice]:
        """Apply reporting switches, build the Notice and run hooks."""
        settings = self._settings
        if not settings.enabled:
            return self._skip("disabled", context)
        if not settings.api_key:
            return self._skip("no_api_key", context)
        if settings.is_development:
            return self._skip("development", context)

        try:
            notice = self.build_notice(context)
        except Exception as e:
            logger.warning(
                "notice_build_failed",
                error=str(e),
                error_class=context.error_class,
                origin=context.origin.value,
            )
            NOTICES_SKIPPED_TOTAL.labels(reason="build_failed").inc()
            return None

        for hook in list(self._hooks):
            try:
                keep = hook(notice)
            except Exception as e:
                logger.warning("before_notify_hook_failed", hook=getattr(hook, "__name__", repr(hook)), error=str(e))
                continue
            if keep is False:
                return self._skip("hook", context)

        return notice

    def _skip(self, reason: str, context: ErrorContext) -> None:
        NOTICES_SKIPPED_TOTAL.labels(reason=reason).inc()
        logger.debug(
            "notice_skipped",
            reason=reason,
            error_class=context.error_class,
            origin=context.origin.value,
        )
        return None

    def notify(self, context: ErrorContext) -> None:
        """Report a captured error. Fire-and-forget, never raises."""
        try:
            notice = self._prepare(context)
            if notice is None:
                return
            logger.info(
                "notice_captured",
                notice_id=notice.id,
                error_class=context.error_class,
                origin=context.origin.value,
                scope_id=context.scope_id,
            )
            self.dispatch(self._settings.notices_path, notice.to_payload(), notice_id=notice.id)
        except Exception as e:
            logger.warning("notify_failed", error=str(e))

    async def notify_async(self, context: ErrorContext) -> bool:
        """Report a captured error and wait for the delivery attempt.

        Returns True when the collector accepted the notice. Never raises.
        """
        try:
            notice = self._prepare(context)
            if notice is None:
                return False
            logger.info(
                "notice_captured",
                notice_id=notice.id,
                error_class=context.error_class,
                origin=context.origin.value,
                scope_id=context.scope_id,
            )
            return await self.deliver(self._settings.notices_path, notice.to_payload(), notice_id=notice.id)
        except Exception as e:
            logger.warning("notify_failed", error=str(e))
            return False
