"""HTTP webhook delivery.

POSTs the hydrated message JSON to a consumer-configured URL. Single
attempt: a failed POST is reported, not retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    """Result of a webhook POST."""

    success: bool
    message: str
    status_code: int | None = None


def mask_url(url: str) -> str:
    """Shorten a target URL for logging; query strings often carry secrets."""
    base = url.split("?", 1)[0]
    if len(base) > 40:
        return base[:30] + "..." + base[-5:]
    return base


class WebhookDelivery:
    """Sends payloads to one URL using a shared httpx client."""

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self._url = url
        self._client = client

    @property
    def url(self) -> str:
        """Get the target URL (masked for logging)."""
        return mask_url(self._url)

    async def send(self, payload: dict[str, Any]) -> WebhookResult:
        """POST the payload as JSON.

        Returns:
            WebhookResult; success means a 2xx answer.
        """
        try:
            response = await self._client.post(self._url, json=payload)
        except httpx.RequestError as e:
            logger.warning("Webhook delivery to %s failed: %s", self.url, e)
            return WebhookResult(success=False, message=f"Network error: {e}")

        if response.is_success:
            return WebhookResult(
                success=True,
                message="Delivered",
                status_code=response.status_code,
            )

        logger.warning(
            "Webhook delivery to %s rejected with status %d",
            self.url,
            response.status_code,
        )
        return WebhookResult(
            success=False,
            message=f"Target responded with status {response.status_code}",
            status_code=response.status_code,
        )
