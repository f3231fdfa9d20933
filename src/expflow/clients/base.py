# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared httpx plumbing for the SaaS API clients.

Every client is a thin synchronous wrapper: credentials are passed at
construction, responses are decoded as JSON, and failures map onto two
error types:

- RemoteAPIError: the service answered with a non-2xx status
- TransportError: no HTTP response (DNS, connect, timeout)

Nothing is retried here.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, ClassVar

import httpx

from expflow.lib.errors import RemoteAPIError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class BaseAPIClient:
    """Synchronous JSON API client over ``httpx.Client``.

    Args:
        base_url: Service base URL.
        headers: Headers sent with every request (auth, accept).
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    service: ClassVar[str] = "api"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> BaseAPIClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        logger.debug("%s %s %s", self.service, method, path)
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.RequestError as exc:
            raise TransportError(self.service, str(exc) or type(exc).__name__) from exc
        if not response.is_success:
            raise RemoteAPIError(self.service, response.status_code, response.text)
        return response

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty).

        Raises:
            RemoteAPIError: On a non-2xx status or an undecodable body.
            TransportError: When no response was received.
        """
        response = self._send(method, path, params=params, json=json)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteAPIError(
                self.service,
                response.status_code,
                f"Invalid JSON response: {response.text[:200]}",
            ) from exc
