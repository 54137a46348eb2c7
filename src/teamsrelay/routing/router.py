"""Notification fan-out.

The NotificationRouter turns a batch of data notifications into deliveries:
parse the resource, select interested consumers, fetch the full message
once and hand it to the ConsumerSink in a single fan-out call. One
notification's failure never stops the rest of the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from teamsrelay.graph.notifications import ResourcePath
from teamsrelay.logging import log_notification_routed
from teamsrelay.routing.matchers import select_consumers
from teamsrelay.routing.registry import MESSAGES_KIND, HydratedMessage

if TYPE_CHECKING:
    from teamsrelay.graph.auth import TokenCache
    from teamsrelay.graph.client import ResourceApiClient
    from teamsrelay.graph.notifications import Notification
    from teamsrelay.routing.registry import ConsumerRegistration, ConsumerRegistry

logger = logging.getLogger(__name__)

# Body of join/leave/rename style system messages
SYSTEM_EVENT_SENTINEL = "<systemEventMessage/>"


class RoutingFailure(Exception):
    """A fetch or delivery failure for a single notification."""

    def __init__(self, message: str, *, resource: str) -> None:
        super().__init__(message)
        self.resource = resource


class ConsumerSink(Protocol):
    """Delivers one hydrated message to a set of consumers in one call."""

    async def deliver(
        self,
        consumers: list[ConsumerRegistration],
        hydrated: HydratedMessage,
    ) -> Any: ...


@dataclass
class RoutingReport:
    """Per-batch routing counters.

    Attributes:
        received: Notifications in the batch
        skipped: Resource was not a channel message
        unmatched: No consumer wanted the message (no fetch was made)
        suppressed: System event message, fetched but not delivered
        delivered: Handed to every selected consumer
        failed: Fetch or delivery failed
    """

    received: int = 0
    skipped: int = 0
    unmatched: int = 0
    suppressed: int = 0
    delivered: int = 0
    failed: int = 0
    failures: list[RoutingFailure] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "received": self.received,
            "skipped": self.skipped,
            "unmatched": self.unmatched,
            "suppressed": self.suppressed,
            "delivered": self.delivered,
            "failed": self.failed,
        }


def is_system_event(message: Any) -> bool:
    """Whether a fetched message is a Teams system event placeholder."""
    if not isinstance(message, dict):
        return False
    body = message.get("body")
    return isinstance(body, dict) and body.get("content") == SYSTEM_EVENT_SENTINEL


class NotificationRouter:
    """Routes data notifications to interested consumers."""

    def __init__(
        self,
        registry: ConsumerRegistry,
        tokens: TokenCache,
        api: ResourceApiClient,
        sink: ConsumerSink,
    ) -> None:
        self._registry = registry
        self._tokens = tokens
        self._api = api
        self._sink = sink

    async def route(self, notifications: list[Notification]) -> RoutingReport:
        """Route a batch sequentially. Never raises.

        Args:
            notifications: Parsed data notifications

        Returns:
            Counters describing what happened to each notification
        """
        report = RoutingReport(received=len(notifications))

        for notification in notifications:
            try:
                outcome = await self._route_one(notification)
            except RoutingFailure as e:
                report.failed += 1
                report.failures.append(e)
                log_notification_routed(
                    notification.resource,
                    notification.change_type.value,
                    "failed",
                    error=str(e),
                )
                continue

            if outcome == "skipped":
                report.skipped += 1
            elif outcome == "unmatched":
                report.unmatched += 1
            elif outcome == "suppressed":
                report.suppressed += 1
            else:
                report.delivered += 1

        logger.debug("Routed notification batch: %s", report.as_dict())
        return report

    async def _route_one(self, notification: Notification) -> str:
        resource = notification.resource
        change_type = notification.change_type.value

        path = ResourcePath.parse(resource)
        if path is None:
            log_notification_routed(resource, change_type, "skipped")
            return "skipped"

        try:
            registrations = self._registry.list_consumers(MESSAGES_KIND)
        except Exception as e:
            raise RoutingFailure(
                f"Failed to list consumers: {e}", resource=resource
            ) from e

        consumers = select_consumers(registrations, path)
        consumer_ids = [c.consumer_id for c in consumers]
        if not consumers:
            log_notification_routed(resource, change_type, "unmatched")
            return "unmatched"

        try:
            credential = await self._tokens.get_valid_token()
            message = await self._api.call(
                f"/{resource.lstrip('/')}", credential.bearer_token
            )
        except Exception as e:
            raise RoutingFailure(
                f"Failed to fetch message: {e}", resource=resource
            ) from e

        if is_system_event(message):
            log_notification_routed(resource, change_type, "suppressed", consumer_ids)
            return "suppressed"

        if not isinstance(message, dict):
            raise RoutingFailure("Fetched message is not a JSON object", resource=resource)

        hydrated = HydratedMessage(message=message, change_type=notification.change_type)
        try:
            await self._sink.deliver(consumers, hydrated)
        except Exception as e:
            raise RoutingFailure(f"Delivery failed: {e}", resource=resource) from e

        log_notification_routed(resource, change_type, "delivered", consumer_ids)
        return "delivered"
