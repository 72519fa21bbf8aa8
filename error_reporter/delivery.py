# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Fire-and-forget delivery shared by the Notifier and Metrics Emitter.

With a running event loop, a submission becomes a tracked background task and
the caller returns immediately. Without one (plain synchronous code, most
serverless handlers) the submission runs inline on the sync client. Either
way a delivery failure is logged and swallowed here.
"""

import asyncio
import time
from typing import Any

import structlog
from prometheus_client import Counter, Histogram

from .config import ReporterSettings, get_settings
from .transport import Transport

logger = structlog.get_logger(__name__)
prefix = get_settings().metrics_prefix

DELIVERIES_TOTAL = Counter(
    f"{prefix}_deliveries_total",
    "Payloads handed to the transport",
    ["channel", "outcome"],  # notice|metric, success|failure
)

DELIVERY_DURATION_SECONDS = Histogram(
    f"{prefix}_delivery_duration_seconds",
    "Time spent submitting one payload",
    ["channel"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class Dispatcher:
    """Submits payloads without ever raising into the caller."""

    channel = "payload"

    def __init__(self, settings: ReporterSettings, transport: Transport):
        self._settings = settings
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, path: str, payload: dict[str, Any], **log_fields: Any) -> None:
        """Schedule delivery and return immediately."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver_inline(path, payload, log_fields)
            return

        task = loop.create_task(self.deliver(path, payload, **log_fields))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def deliver(self, path: str, payload: dict[str, Any], **log_fields: Any) -> bool:
        """Submit one payload and wait for the outcome. Never raises."""
        start_time = time.perf_counter()
        try:
            outcome = await self._transport.asubmit(path, payload)
        except Exception as e:
            self._record("failure", start_time)
            logger.warning(f"{self.channel}_delivery_failed", path=path, error=str(e), **log_fields)
            return False

        self._record("success", start_time)
        logger.debug(
            f"{self.channel}_delivered",
            path=path,
            status_code=outcome.status_code,
            remote_id=outcome.notice_id,
            **log_fields,
        )
        return True

    def _deliver_inline(self, path: str, payload: dict[str, Any], log_fields: dict[str, Any]) -> bool:
        start_time = time.perf_counter()
        try:
            outcome = self._transport.submit(path, payload)
        except Exception as e:
            self._record("failure", start_time)
            logger.warning(f"{self.channel}_delivery_failed", path=path, error=str(e), **log_fields)
            return False

        self._record("success", start_time)
        logger.debug(
            f"{self.channel}_delivered",
            path=path,
            status_code=outcome.status_code,
            remote_id=outcome.notice_id,
            **log_fields,
        )
        return True

    def _record(self, outcome: str, start_time: float) -> None:
        DELIVERIES_TOTAL.labels(channel=self.channel, outcome=outcome).inc()
        DELIVERY_DURATION_SECONDS.labels(channel=self.channel).observe(time.perf_counter() - start_time)

    async def flush(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
