"""Reporter data models."""

from .context import ErrorContext, ErrorOrigin, InvocationArgs, RequestMeta
from .metrics import MetricEvent, MetricKind
from .notice import (
    BacktraceFrame,
    Notice,
    NoticeCause,
    NoticeError,
    NoticeRequest,
    NoticeServer,
    NotifierInfo,
    build_backtrace,
)

__all__ = [
    # Context
    "ErrorContext",
    "ErrorOrigin",
    "InvocationArgs",
    "RequestMeta",
    # Notice
    "BacktraceFrame",
    "Notice",
    "NoticeCause",
    "NoticeError",
    "NoticeRequest",
    "NoticeServer",
    "NotifierInfo",
    "build_backtrace",
    # Metrics
    "MetricEvent",
    "MetricKind",
]
