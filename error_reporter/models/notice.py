# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Notice Models

Pydantic schemas for the payload posted to the collector's notices endpoint.
"""

import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from .context import ErrorOrigin

MAX_CAUSES = 5


class BacktraceFrame(BaseModel):
    """One stack frame, most recent call first in a backtrace"""
    file: str
    number: Optional[int] = None
    method: str
    source: Optional[str] = Field(None, description="Source line, if available")


def build_backtrace(error: BaseException) -> list[BacktraceFrame]:
    """Extract frames from an exception traceback, most recent first."""
    frames = traceback.extract_tb(error.__traceback__) if error.__traceback__ else []
    return [
        BacktraceFrame(
            file=frame.filename,
            number=frame.lineno,
            method=frame.name,
            source=frame.line or None,
        )
        for frame in reversed(frames)
    ]


class NoticeCause(BaseModel):
    """A chained exception (``__cause__`` or ``__context__``)"""
    error_class: str = Field(..., serialization_alias="class")
    message: str
    backtrace: list[BacktraceFrame] = Field(default_factory=list)


class NoticeError(BaseModel):
    """Error section of a notice"""
    error_class: str = Field(..., serialization_alias="class")
    message: str
    backtrace: list[BacktraceFrame] = Field(default_factory=list)
    causes: list[NoticeCause] = Field(default_factory=list)
    fingerprint: Optional[str] = None

    @classmethod
    def from_exception(cls, error: BaseException, max_causes: int = MAX_CAUSES) -> "NoticeError":
        """Build the error section, following the exception chain."""
        causes: list[NoticeCause] = []
        seen = {id(error)}
        current = error.__cause__ or error.__context__
        while current is not None and len(causes) < max_causes and id(current) not in seen:
            seen.add(id(current))
            causes.append(
                NoticeCause(
                    error_class=type(current).__name__,
                    message=str(current),
                    backtrace=build_backtrace(current),
                )
            )
            current = current.__cause__ or current.__context__

        return cls(
            error_class=type(error).__name__,
            message=str(error),
            backtrace=build_backtrace(error),
            causes=causes,
        )


class NoticeRequest(BaseModel):
    """Request section of a notice (also carries user context)"""
    url: Optional[str] = None
    component: Optional[str] = None
    action: Optional[str] = None
    params: dict[str, Any] = Field(default_factory=dict)
    cgi_data: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)


class NoticeServer(BaseModel):
    """Environment the error happened in"""
    environment_name: str
    hostname: str
    project_root: str
    pid: int


class NotifierInfo(BaseModel):
    """Identifies this client to the collector"""
    name: str = "error-reporter"
    url: str = "https://pypi.org/project/error-reporter/"
    version: str


class Notice(BaseModel):
    """
    Complete payload for one reported error.

    Self-contained: nothing in a Notice is shared with another Notice.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    api_key: str
    notifier: NotifierInfo
    error: NoticeError
    request: NoticeRequest = Field(default_factory=NoticeRequest)
    server: NoticeServer
    origin: ErrorOrigin
    scope_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the collector"""
        payload = self.model_dump(mode="json", by_alias=True, exclude={"id", "scope_id"})
        payload["timestamp"] = self.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return payload
