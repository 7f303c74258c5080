"""Shared HTTP client for external collaborators.

Wraps a single lazily created aiohttp session used by the data-provider
handlers and the transcript store. Failures are normalized into a small
exception taxonomy so callers can map them to structured results without
depending on aiohttp internals.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base class for collaborator request failures."""


class ProviderRequestError(ProviderError):
    """Network failure or timeout before a response was received."""


class ProviderStatusError(ProviderError):
    """Collaborator answered with a non-success status."""

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body


class ProviderPayloadError(ProviderError):
    """Response body was not valid JSON."""


async def _read_text(resp: aiohttp.ClientResponse) -> str | None:
    """Response body as text, None if it does not decode in its charset."""
    try:
        return await resp.text()
    except UnicodeDecodeError:
        return None


class JSONHTTPClient:
    """Minimal JSON request/response client over aiohttp.

    The underlying session is created on first use and shared across
    concurrent requests; it holds no per-request state.
    """

    def __init__(self, timeout_s: float = 10.0) -> None:
        """Initialize client.

        Args:
            timeout_s: Default total timeout per request in seconds
        """
        self.timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is initialized.

        Returns:
            Open ClientSession
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _timeout(self, timeout_s: float | None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=timeout_s or self.timeout_s)

    async def get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        """Issue a GET request and decode the JSON body.

        Args:
            url: Request URL
            params: Query string parameters
            timeout_s: Optional per-request timeout override

        Returns:
            Decoded JSON value

        Raises:
            ProviderRequestError: On network failure or timeout
            ProviderStatusError: On non-2xx status
            ProviderPayloadError: If the body does not decode or is not valid JSON
        """
        session = self._ensure_session()
        try:
            async with session.get(url, params=params, timeout=self._timeout(timeout_s)) as resp:
                body = await _read_text(resp)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderRequestError(f"GET {url} failed: {e!r}") from e

        if not 200 <= status < 300:
            raise ProviderStatusError(status, body or "")

        if body is None:
            raise ProviderPayloadError(f"Undecodable response body from {url}")
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ProviderPayloadError(f"Invalid JSON from {url}") from e

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        timeout_s: float | None = None,
    ) -> Any:
        """Issue a POST request with a JSON body.

        Args:
            url: Request URL
            payload: JSON-serializable body
            timeout_s: Optional per-request timeout override

        Returns:
            Decoded JSON response, or None when the body is empty, undecodable
            or not JSON

        Raises:
            ProviderRequestError: On network failure or timeout
            ProviderStatusError: On non-2xx status
        """
        session = self._ensure_session()
        try:
            async with session.post(url, json=payload, timeout=self._timeout(timeout_s)) as resp:
                body = await _read_text(resp)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderRequestError(f"POST {url} failed: {e!r}") from e

        if not 200 <= status < 300:
            raise ProviderStatusError(status, body or "")

        if body is None:
            logger.debug("Undecodable response body", extra={"url": url, "status": status})
            return None
        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            logger.debug("Non-JSON response body", extra={"url": url, "status": status})
            return None
