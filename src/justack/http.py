"""HTTP request helper for the Justack REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import ClientOptions
from .errors import JustackError, NetworkError, RequestTimeoutError, error_from_response

logger = logging.getLogger(__name__)


class HTTPClient:
    """Thin async wrapper over httpx that maps API failures to JustackError.

    The underlying httpx.AsyncClient is created lazily; pass one in to reuse
    connection pools or to inject a mock transport in tests.
    """

    def __init__(
        self,
        options: ClientOptions,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.options = options
        self._http_client = http_client
        self._owns_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.options.timeout)
        return self._http_client

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Execute a request and return the decoded JSON body.

        Returns:
            Decoded body, or None for 204 No Content

        Raises:
            RequestTimeoutError: The request timed out
            NetworkError: The request never produced a response
            JustackError: The API answered with an error status
        """
        url = f"{self.options.base_url}{path}"
        headers = {"Content-Type": "application/json", **self.options.auth_headers}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self._client().request(
                method,
                url,
                json=json,
                params=params or None,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError() from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Network request failed: {e}") from e

        if response.status_code == 204:
            return None

        try:
            body = response.json()
        except ValueError as e:
            if response.is_success:
                raise JustackError(
                    f"Invalid JSON in response to {method} {path}", status=response.status_code
                ) from e
            body = None

        if not response.is_success:
            logger.debug(f"{method} {path} -> {response.status_code}")
            raise error_from_response(response.status_code, body)

        return body

    async def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
