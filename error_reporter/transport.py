# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
HTTP transport to the remote collector.

The Notifier and Metrics Emitter only depend on the ``Transport`` protocol,
so tests and alternative backends can swap the delivery mechanism.
"""

from typing import Any, Optional, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel

from . import __version__
from .config import ReporterSettings
from .errors import ReporterErrorCode, TransportError

logger = structlog.get_logger(__name__)


class TransportOutcome(BaseModel):
    """Result of a successful submission."""

    status_code: int
    notice_id: Optional[str] = None


@runtime_checkable
class Transport(Protocol):
    """Delivery capability consumed by the Notifier and Metrics Emitter.

    Implementations raise ``TransportError`` on failure.
    """

    def submit(self, path: str, payload: dict[str, Any]) -> TransportOutcome: ...

    async def asubmit(self, path: str, payload: dict[str, Any]) -> TransportOutcome: ...


class HttpTransport:
    """httpx-backed transport posting JSON to the collector."""

    def __init__(
        self,
        settings: ReporterSettings,
        *,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = settings.endpoint
        self.timeout = settings.timeout
        self._api_key = settings.api_key
        self._client = client
        self._async_client = async_client

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self._api_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"error-reporter/{__version__}",
        }

    def _get_client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    async def _get_async_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._async_client is None or self._async_client.is_closed:
            self._async_client = httpx.AsyncClient(timeout=self.timeout)
        return self._async_client

    def submit(self, path: str, payload: dict[str, Any]) -> TransportOutcome:
        url = f"{self.base_url}{path}"
        try:
            response = self._get_client().post(url, json=payload, headers=self.headers)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timed out posting to {url}",
                code=ReporterErrorCode.TRANSPORT_TIMEOUT,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        return self._handle_response(url, response)

    async def asubmit(self, path: str, payload: dict[str, Any]) -> TransportOutcome:
        url = f"{self.base_url}{path}"
        try:
            client = await self._get_async_client()
            response = await client.post(url, json=payload, headers=self.headers)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timed out posting to {url}",
                code=ReporterErrorCode.TRANSPORT_TIMEOUT,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        return self._handle_response(url, response)

    def _handle_response(self, url: str, response: httpx.Response) -> TransportOutcome:
        if response.status_code >= 400:
            raise TransportError(
                f"Collector rejected payload: {response.status_code}",
                code=ReporterErrorCode.TRANSPORT_REJECTED,
                status_code=response.status_code,
                details={"url": url, "body": response.text[:500]},
            )

        notice_id = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                notice_id = body.get("id")

        logger.debug("collector_accepted", url=url, status_code=response.status_code, notice_id=notice_id)
        return TransportOutcome(status_code=response.status_code, notice_id=notice_id)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        self.close()
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None
