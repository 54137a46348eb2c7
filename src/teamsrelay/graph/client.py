"""Microsoft Graph REST client.

Single-attempt authenticated calls against the Graph v1.0 API. There are no
retries; a failed call waits for the next scheduled trigger or webhook
delivery.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GRAPH_API_ROOT = "https://graph.microsoft.com/v1.0"


class ApiFailure(Exception):
    """Raised when Graph rejects a call or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        """Initialize API failure.

        Args:
            message: Error description.
            status_code: HTTP status code, None for transport errors.
            code: Graph error code (e.g. 'InvalidAuthenticationToken').
        """
        super().__init__(message)
        self.status_code = status_code
        self.code = code


def extract_error(body: Any, status_code: int) -> tuple[str, str | None]:
    """Pick the most specific error message from a Graph error body.

    Priority: error.message, then error.code, then a generic status line.

    Returns:
        Tuple of (message, code)
    """
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        code = error.get("code") if isinstance(error.get("code"), str) else None
        message = error.get("message")
        if isinstance(message, str) and message:
            return message, code
        if code:
            return code, code
    return f"Graph API request failed with status {status_code}", None


def parse_body(response: httpx.Response) -> Any:
    """Parse a response body: {} when empty, {'text': raw} when not JSON."""
    raw = response.text
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return {"text": raw}


class ResourceApiClient:
    """Async Graph API client.

    The client supports both context manager and standalone usage.

    Example:
        >>> async with ResourceApiClient() as graph:
        ...     org = await graph.call("/organization", token)
    """

    def __init__(
        self,
        *,
        base_url: str = GRAPH_API_ROOT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> ResourceApiClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self._client

    def resolve_url(self, path: str) -> str:
        """Join a relative path to the API root; absolute https URLs pass through."""
        if path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def call(
        self,
        path: str,
        token: str,
        *,
        method: str = "GET",
        body: Any = None,
    ) -> Any:
        """Issue one authenticated request.

        Args:
            path: Path relative to the API root, or an absolute https:// URL.
            token: Bearer token.
            method: HTTP method.
            body: JSON-serializable request body, if any.

        Returns:
            Parsed JSON response ({} for empty bodies, {'text': raw} for non-JSON).

        Raises:
            ApiFailure: On any non-2xx response or transport error.
        """
        client = await self._ensure_client()
        url = self.resolve_url(path)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        request_kwargs: dict[str, Any] = {"headers": headers}
        if body is not None:
            request_kwargs["json"] = body

        try:
            response = await client.request(method.upper(), url, **request_kwargs)
        except httpx.RequestError as e:
            raise ApiFailure(f"Graph API request failed: {e}") from e

        parsed = parse_body(response)

        if not response.is_success:
            message, code = extract_error(parsed, response.status_code)
            logger.debug("%s %s -> %d: %s", method.upper(), url, response.status_code, message)
            raise ApiFailure(message, status_code=response.status_code, code=code)

        return parsed
