# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for the HTTP transport."""

import json

import httpx
import pytest

from error_reporter import __version__
from error_reporter.errors import ReporterErrorCode, TransportError
from error_reporter.transport import HttpTransport, Transport


def _transport(settings, handler) -> HttpTransport:
    mock = httpx.MockTransport(handler)
    return HttpTransport(
        settings,
        client=httpx.Client(transport=mock),
        async_client=httpx.AsyncClient(transport=mock),
    )


class TestHttpTransport:
    """Tests for HttpTransport."""

    def test_satisfies_protocol(self, settings):
        assert isinstance(HttpTransport(settings), Transport)

    def test_submit_posts_json(self, settings):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "7b1f1d9a"})

        outcome = _transport(settings, handler).submit("/v1/notices", {"error": {"class": "ValueError"}})

        assert outcome.status_code == 201
        assert outcome.notice_id == "7b1f1d9a"
        (request,) = requests
        assert str(request.url) == "https://api.honeybadger.io/v1/notices"
        assert request.headers["X-API-Key"] == "fake api key"
        assert request.headers["User-Agent"] == f"error-reporter/{__version__}"
        assert json.loads(request.content) == {"error": {"class": "ValueError"}}

    def test_empty_body_accepted(self, settings):
        outcome = _transport(settings, lambda request: httpx.Response(204)).submit("/v1/metrics", {})

        assert outcome.status_code == 204
        assert outcome.notice_id is None

    def test_rejection_raises(self, settings):
        transport = _transport(settings, lambda request: httpx.Response(403, text="bad key"))

        with pytest.raises(TransportError) as excinfo:
            transport.submit("/v1/notices", {})

        assert excinfo.value.code == ReporterErrorCode.TRANSPORT_REJECTED
        assert excinfo.value.status_code == 403
        assert excinfo.value.details["body"] == "bad key"
        assert excinfo.value.retryable is False

    def test_server_error_retryable(self, settings):
        transport = _transport(settings, lambda request: httpx.Response(503))

        with pytest.raises(TransportError) as excinfo:
            transport.submit("/v1/notices", {})

        assert excinfo.value.retryable is True

    def test_connection_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError) as excinfo:
            _transport(settings, handler).submit("/v1/notices", {})

        assert excinfo.value.code == ReporterErrorCode.TRANSPORT_UNAVAILABLE
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportError) as excinfo:
            _transport(settings, handler).submit("/v1/notices", {})

        assert excinfo.value.code == ReporterErrorCode.TRANSPORT_TIMEOUT

    def test_endpoint_trailing_slash(self, settings):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201)

        custom = settings.model_copy(update={"endpoint": "https://collector.internal"})
        _transport(custom, handler).submit("/v1/metrics", {})

        assert str(requests[0].url) == "https://collector.internal/v1/metrics"

    @pytest.mark.asyncio
    async def test_asubmit(self, settings):
        transport = _transport(settings, lambda request: httpx.Response(201, json={"id": "abc"}))

        outcome = await transport.asubmit("/v1/notices", {})

        assert outcome.notice_id == "abc"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_asubmit_rejection(self, settings):
        transport = _transport(settings, lambda request: httpx.Response(422))

        with pytest.raises(TransportError):
            await transport.asubmit("/v1/notices", {})
        await transport.aclose()
