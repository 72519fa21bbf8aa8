# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any

import pytest

from error_reporter import ErrorReporter, ReporterSettings, TransportError, create_reporter
from error_reporter.config import clear_settings_cache
from error_reporter.transport import TransportOutcome


class RecordingTransport:
    """In-memory transport recording every submitted payload."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.submissions: list[tuple[str, dict[str, Any]]] = []

    def _record(self, path: str, payload: dict[str, Any]) -> TransportOutcome:
        self.submissions.append((path, payload))
        if self.fail:
            raise TransportError("collector unreachable")
        return TransportOutcome(status_code=201, notice_id="1a327bf6")

    def submit(self, path: str, payload: dict[str, Any]) -> TransportOutcome:
        return self._record(path, payload)

    async def asubmit(self, path: str, payload: dict[str, Any]) -> TransportOutcome:
        return self._record(path, payload)

    def payloads(self, path: str = "/v1/notices") -> list[dict[str, Any]]:
        return [payload for p, payload in self.submissions if p == path]

    async def wait_for(self, count: int, path: str = "/v1/notices", timeout: float = 1.0) -> list[dict[str, Any]]:
        """Wait until at least ``count`` payloads were submitted to ``path``."""
        async def _poll() -> None:
            while len(self.payloads(path)) < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_poll(), timeout)
        return self.payloads(path)


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> ReporterSettings:
    return ReporterSettings(
        api_key="fake api key",
        environment="production",
        hostname="test-host",
        project_root="/srv/app",
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)


@pytest.fixture
def reporter(settings: ReporterSettings, transport: RecordingTransport) -> ErrorReporter:
    return create_reporter(settings, transport=transport)
