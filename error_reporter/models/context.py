# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Error Context Models

Immutable snapshots taken at the moment an error is intercepted.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorOrigin(str, Enum):
    """Which boundary captured the error"""
    REQUEST = "request"
    INVOCATION = "invocation"
    UNCAUGHT = "uncaught"
    MANUAL = "manual"


class RequestMeta(BaseModel):
    """HTTP request metadata as seen by the entry stage"""
    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    url: str = ""
    query_params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    client_ip: Optional[str] = None
    route: Optional[str] = Field(None, description="Matched route name, if known")


class InvocationArgs(BaseModel):
    """Arguments passed to a wrapped invocation"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = Field(default_factory=dict)
    handler: Optional[str] = Field(None, description="Qualified name of the wrapped handler")


class ErrorContext(BaseModel):
    """
    Snapshot of one intercepted fault.

    Created once per distinct fault, consumed by the Notifier, then dropped.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    error: BaseException
    origin: ErrorOrigin
    request_meta: Optional[RequestMeta] = None
    invocation_args: Optional[InvocationArgs] = None
    context: dict[str, Any] = Field(default_factory=dict, description="User-supplied context")
    scope_id: Optional[str] = None
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_class(self) -> str:
        return type(self.error).__name__

    @property
    def error_message(self) -> str:
        return str(self.error)
