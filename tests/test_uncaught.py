# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for process-level uncaught error hooks."""

import asyncio
import sys
from unittest.mock import MagicMock, patch

import pytest

from error_reporter import install_asyncio_handler, install_excepthook, uninstall_excepthook
from error_reporter.models import ErrorOrigin


@pytest.fixture
def previous_hook(monkeypatch):
    hook = MagicMock()
    monkeypatch.setattr(sys, "excepthook", hook)
    yield hook
    uninstall_excepthook()


class TestExcepthook:
    def test_reports_then_delegates(self, reporter, transport, previous_hook):
        install_excepthook(reporter)
        error = RuntimeError("fatal")

        sys.excepthook(RuntimeError, error, None)

        (payload,) = transport.payloads()
        assert payload["origin"] == "uncaught"
        assert payload["error"]["message"] == "fatal"
        previous_hook.assert_called_once_with(RuntimeError, error, None)

    def test_keyboard_interrupt_not_reported(self, reporter, transport, previous_hook):
        install_excepthook(reporter)

        sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)

        assert transport.payloads() == []
        previous_hook.assert_called_once()

    def test_uninstall_restores(self, reporter, previous_hook):
        install_excepthook(reporter)
        assert sys.excepthook is not previous_hook

        uninstall_excepthook()

        assert sys.excepthook is previous_hook

    def test_reinstall_does_not_chain_twice(self, reporter, transport, previous_hook):
        install_excepthook(reporter)
        install_excepthook(reporter)

        sys.excepthook(ValueError, ValueError("once"), None)

        assert len(transport.payloads()) == 1
        previous_hook.assert_called_once()


class TestAsyncioHandler:
    @pytest.mark.asyncio
    async def test_loop_error_reported_and_delegated(self, reporter, transport):
        loop = asyncio.get_running_loop()
        downstream = MagicMock()
        loop.set_exception_handler(downstream)
        try:
            previous = install_asyncio_handler(reporter)
            error = ValueError("callback crashed")

            loop.call_exception_handler({"message": "Exception in callback", "exception": error})
            await reporter.flush()
        finally:
            loop.set_exception_handler(None)

        assert previous is downstream
        (payload,) = transport.payloads()
        assert payload["origin"] == "uncaught"
        assert payload["request"]["context"] == {"asyncio_message": "Exception in callback"}
        downstream.assert_called_once()

    @pytest.mark.asyncio
    async def test_task_error_attributed_to_scope(self, reporter, transport):
        loop = asyncio.get_running_loop()
        scope = reporter.create_scope(ErrorOrigin.INVOCATION)

        async def job():
            raise KeyError("orphan")

        with scope.activate():
            task = loop.create_task(job())
        await asyncio.gather(task, return_exceptions=True)

        with patch.object(loop, "default_exception_handler") as default_handler:
            install_asyncio_handler(reporter, loop)
            try:
                loop.call_exception_handler(
                    {"message": "Task exception was never retrieved", "exception": KeyError("orphan"), "task": task}
                )
                await reporter.flush()
            finally:
                loop.set_exception_handler(None)

        (payload,) = transport.payloads()
        assert payload["origin"] == "invocation"
        default_handler.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_exception_context_only_delegated(self, reporter, transport):
        loop = asyncio.get_running_loop()
        with patch.object(loop, "default_exception_handler") as default_handler:
            install_asyncio_handler(reporter)
            try:
                loop.call_exception_handler({"message": "unclosed transport"})
            finally:
                loop.set_exception_handler(None)

        assert transport.payloads() == []
        default_handler.assert_called_once()
