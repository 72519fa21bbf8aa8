# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Error taxonomy for the reporter itself.

These exceptions describe failures of the reporting machinery, never of the
host application. Application errors are always re-raised untouched; the
classes below are caught at the Notifier / Metrics Emitter boundary and only
ever reach the host through explicit configuration checks.
"""

from enum import Enum
from typing import Any


class ReporterErrorCode(str, Enum):
    """Machine-readable codes for reporter failures."""

    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    TRANSPORT_UNAVAILABLE = "TRANSPORT_UNAVAILABLE"
    TRANSPORT_REJECTED = "TRANSPORT_REJECTED"
    TRANSPORT_TIMEOUT = "TRANSPORT_TIMEOUT"


class ReporterError(Exception):
    """Base exception for reporter errors.

    Usage:
        raise ReporterError(
            code=ReporterErrorCode.TRANSPORT_REJECTED,
            message="collector answered 422",
            details={"path": "/v1/notices"},
        )
    """

    def __init__(
        self,
        code: ReporterErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, ReporterErrorCode) else ReporterErrorCode(code)
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict suitable for structured log fields."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ReporterError):
    """Raised when settings cannot support delivery."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ReporterErrorCode.CONFIGURATION_INVALID,
            message=message,
            details=details,
        )


class TransportError(ReporterError):
    """Raised by a transport when a payload could not be delivered."""

    def __init__(
        self,
        message: str,
        *,
        code: ReporterErrorCode = ReporterErrorCode.TRANSPORT_UNAVAILABLE,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        super().__init__(code=code, message=message, details=details)

    @property
    def retryable(self) -> bool:
        """Whether the collector might accept the same payload later."""
        if self.code == ReporterErrorCode.TRANSPORT_TIMEOUT:
            return True
        if self.status_code is None:
            return self.code == ReporterErrorCode.TRANSPORT_UNAVAILABLE
        return self.status_code == 429 or self.status_code >= 500

