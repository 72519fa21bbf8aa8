# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for notice and context models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from error_reporter.models import ErrorContext, ErrorOrigin, Notice, RequestMeta
from error_reporter.models.notice import (
    MAX_CAUSES,
    NoticeError,
    NoticeServer,
    NotifierInfo,
    build_backtrace,
)


def _nested_failure():
    def inner():
        raise ValueError("deep")

    try:
        inner()
    except ValueError as e:
        return e


class TestBacktrace:
    def test_most_recent_first(self):
        frames = build_backtrace(_nested_failure())

        assert [f.method for f in frames] == ["inner", "_nested_failure"]
        assert frames[0].source == 'raise ValueError("deep")'
        assert frames[0].number is not None

    def test_unraised_exception_has_no_frames(self):
        assert build_backtrace(ValueError("never raised")) == []


class TestNoticeError:
    def test_cause_chain_limited(self):
        error = ValueError("0")
        current = error
        for i in range(1, MAX_CAUSES + 3):
            nxt = ValueError(str(i))
            current.__cause__ = nxt
            current = nxt

        assert len(NoticeError.from_exception(error).causes) == MAX_CAUSES

    def test_cycle_terminates(self):
        first, second = ValueError("a"), ValueError("b")
        first.__cause__ = second
        second.__cause__ = first

        causes = NoticeError.from_exception(first).causes

        assert [c.message for c in causes] == ["b"]

    def test_implicit_context_followed(self):
        try:
            try:
                raise KeyError("k")
            except KeyError:
                raise RuntimeError("while handling")
        except RuntimeError as e:
            causes = NoticeError.from_exception(e).causes

        assert causes[0].error_class == "KeyError"


class TestNotice:
    def _notice(self, **kwargs) -> Notice:
        return Notice(
            api_key="k",
            notifier=NotifierInfo(version="0.1.0"),
            error=NoticeError.from_exception(ValueError("x")),
            server=NoticeServer(environment_name="production", hostname="h", project_root="/", pid=1),
            origin=ErrorOrigin.MANUAL,
            **kwargs,
        )

    def test_payload_uses_wire_names(self):
        payload = self._notice(scope_id="abc").to_payload()

        assert payload["error"]["class"] == "ValueError"
        assert "error_class" not in payload["error"]
        assert "id" not in payload
        assert "scope_id" not in payload

    def test_timestamp_format(self):
        stamp = datetime(2026, 3, 1, 12, 30, 5, tzinfo=timezone.utc)

        assert self._notice(timestamp=stamp).to_payload()["timestamp"] == "2026-03-01T12:30:05Z"

    def test_notices_do_not_share_state(self):
        first, second = self._notice(), self._notice()

        first.request.context["user"] = 1

        assert second.request.context == {}
        assert first.id != second.id


class TestErrorContext:
    def test_error_properties(self):
        context = ErrorContext(error=KeyError("missing"), origin=ErrorOrigin.MANUAL)

        assert context.error_class == "KeyError"
        assert context.captured_at.tzinfo is not None

    def test_frozen(self):
        meta = RequestMeta(method="GET", path="/", url="http://testserver/")

        with pytest.raises(ValidationError):
            meta.path = "/other"
