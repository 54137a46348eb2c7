"""Framework-independent webhook request handling.

WebhookEndpoint implements the Graph side of the HTTP protocol and returns
plain EndpointResponse values; the FastAPI layer only translates them.

- validation handshake: echo ``validationToken`` as text/plain with 200
- data notifications: route every element, then 202
- lifecycle notifications: request a resync for reauthorization/removal, 202
- anything else: 404
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from teamsrelay.graph.notifications import (
    ValidationFailure,
    parse_lifecycle_notification,
    parse_notifications,
    verify_client_state,
)
from teamsrelay.logging import log_lifecycle_event

if TYPE_CHECKING:
    from collections.abc import Mapping

    from teamsrelay.routing.router import NotificationRouter, RoutingReport

logger = logging.getLogger(__name__)

WEBHOOK_SUFFIX = "/webhook"
LIFECYCLE_SUFFIX = "/lifecycle"

ACCEPTED: dict[str, Any] = {"status": "accepted"}


@dataclass(frozen=True)
class EndpointResponse:
    """HTTP response produced by the endpoint.

    Attributes:
        status_code: HTTP status
        body: JSON object, or the raw text for text/plain responses
        media_type: Response content type
        resync_requested: A lifecycle event asked for a background resync
        report: Routing counters for data notification batches
    """

    status_code: int
    body: dict[str, Any] | str
    media_type: str = "application/json"
    resync_requested: bool = False
    report: RoutingReport | None = None

    @classmethod
    def error(cls, status_code: int, message: str) -> EndpointResponse:
        return cls(status_code=status_code, body={"error": message})


def _decode_json(raw_body: bytes) -> Any:
    if not raw_body:
        return None
    try:
        return json.loads(raw_body)
    except ValueError:
        return None


class WebhookEndpoint:
    """Dispatches inbound Graph requests by path suffix."""

    def __init__(
        self,
        router: NotificationRouter,
        *,
        client_state: str,
        verify_client_state: bool = False,
    ) -> None:
        self._router = router
        self._client_state = client_state
        self._verify_client_state = verify_client_state

    async def handle(
        self,
        path: str,
        query: Mapping[str, str],
        raw_body: bytes,
    ) -> EndpointResponse:
        """Handle one inbound request.

        Args:
            path: Request path
            query: Query parameters
            raw_body: Undecoded request body

        Returns:
            The response to send. Never raises for malformed input.
        """
        normalized = path.rstrip("/") or "/"

        if normalized.endswith(LIFECYCLE_SUFFIX):
            return await self.handle_lifecycle(query, raw_body)
        if normalized.endswith(WEBHOOK_SUFFIX):
            return await self.handle_notifications(query, raw_body)

        logger.warning("Request to unknown endpoint: %s", path)
        return EndpointResponse.error(404, "Endpoint not found")

    @staticmethod
    def _handshake(query: Mapping[str, str]) -> EndpointResponse | None:
        token = query.get("validationToken")
        if token:
            logger.info("Answering subscription validation handshake")
            return EndpointResponse(status_code=200, body=token, media_type="text/plain")
        return None

    async def handle_notifications(
        self,
        query: Mapping[str, str],
        raw_body: bytes,
    ) -> EndpointResponse:
        """Validate and route a data notification batch."""
        handshake = self._handshake(query)
        if handshake is not None:
            return handshake

        try:
            notifications = parse_notifications(_decode_json(raw_body))
            if self._verify_client_state:
                verify_client_state(
                    [n.client_state for n in notifications], self._client_state
                )
        except ValidationFailure as e:
            logger.warning("Rejected notification batch: %s", e)
            return EndpointResponse.error(400, str(e))

        report = await self._router.route(notifications)
        return EndpointResponse(status_code=202, body=ACCEPTED, report=report)

    async def handle_lifecycle(
        self,
        query: Mapping[str, str],
        raw_body: bytes,
    ) -> EndpointResponse:
        """Inspect the first lifecycle event and decide whether to resync."""
        handshake = self._handshake(query)
        if handshake is not None:
            return handshake

        try:
            notification = parse_lifecycle_notification(_decode_json(raw_body))
            if self._verify_client_state:
                verify_client_state([notification.client_state], self._client_state)
        except ValidationFailure as e:
            logger.warning("Rejected lifecycle notification: %s", e)
            return EndpointResponse.error(400, str(e))

        resync = notification.requires_resync
        log_lifecycle_event(
            notification.lifecycle_event,
            notification.subscription_id,
            resync_requested=resync,
        )
        return EndpointResponse(status_code=202, body=ACCEPTED, resync_requested=resync)
