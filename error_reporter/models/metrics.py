# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Metric event models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MetricKind(str, Enum):
    """Kind of measurement."""

    TIMING = "timing"
    COUNT = "count"


class MetricEvent(BaseModel):
    """A single named measurement, forwarded as soon as it is created.

    Attributes:
        name: Dotted metric name, e.g. ``app.request.404``
        value: Milliseconds for timings, increment for counts
        kind: Timing or count
    """

    name: str = Field(..., min_length=1)
    value: float
    kind: MetricKind
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def timing(cls, name: str, value: float) -> "MetricEvent":
        return cls(name=name, value=value, kind=MetricKind.TIMING)

    @classmethod
    def count(cls, name: str, value: float = 1) -> "MetricEvent":
        return cls(name=name, value=value, kind=MetricKind.COUNT)

    def to_payload(self, environment: str, hostname: str) -> dict[str, Any]:
        """Serialize as a one-event batch for the metrics endpoint."""
        return {
            "environment": environment,
            "hostname": hostname,
            "metrics": [
                {
                    "name": self.name,
                    "kind": self.kind.value,
                    "value": self.value,
                    "timestamp": self.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
                }
            ],
        }
