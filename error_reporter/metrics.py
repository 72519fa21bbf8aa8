# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Metrics Emitter.

Forwards named timing/count events to the collector's metrics endpoint.
Same contract as the Notifier: fire-and-forget, never raises.
"""

import structlog
from prometheus_client import Counter

from .config import get_settings
from .delivery import Dispatcher
from .models import MetricEvent, MetricKind

logger = structlog.get_logger(__name__)
prefix = get_settings().metrics_prefix

METRIC_EVENTS_TOTAL = Counter(
    f"{prefix}_metric_events_total",
    "Metric events emitted",
    ["kind"],
)


class MetricsEmitter(Dispatcher):
    """Emitter for request/invocation outcome metrics."""

    channel = "metric"

    def timing(self, name: str, value: float) -> None:
        """Record a duration in milliseconds."""
        self._safe_emit(name, value, MetricKind.TIMING)

    def increment(self, name: str, value: float = 1) -> None:
        """Record a count."""
        self._safe_emit(name, value, MetricKind.COUNT)

    def _safe_emit(self, name: str, value: float, kind: MetricKind) -> None:
        try:
            self.emit(MetricEvent(name=name, value=value, kind=kind))
        except Exception as e:
            logger.warning("metric_emit_failed", name=name, error=str(e))

    def emit(self, event: MetricEvent) -> None:
        """Forward one event. Fire-and-forget, never raises."""
        settings = self._settings
        if not settings.should_report:
            logger.debug("metric_skipped", name=event.name, kind=event.kind.value)
            return

        try:
            METRIC_EVENTS_TOTAL.labels(kind=event.kind.value).inc()
            payload = event.to_payload(
                environment=settings.environment,
                hostname=settings.resolved_hostname,
            )
            self.dispatch(settings.metrics_path, payload, metric=event.name)
        except Exception as e:
            logger.warning("metric_emit_failed", name=event.name, error=str(e))
