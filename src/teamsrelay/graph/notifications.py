"""Graph change-notification models and payload parsing.

Graph POSTs batches shaped as ``{"value": [...]}`` to the webhook and
lifecycle URLs. This module turns those bodies into typed notifications and
parses message resource paths into their team/channel/message ids.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ValidationFailure(Exception):
    """Raised when an inbound payload is malformed (answered with HTTP 400)."""


class ClientStateMismatch(ValidationFailure):
    """Raised when a notification's clientState differs from the configured value."""

    def __init__(self, message: str, *, received: str | None = None) -> None:
        super().__init__(message)
        self.received = received


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class LifecycleEvent(str, Enum):
    """Known lifecycle events."""

    REAUTHORIZATION_REQUIRED = "reauthorizationRequired"
    SUBSCRIPTION_REMOVED = "subscriptionRemoved"
    MISSED = "missed"

    @property
    def requires_resync(self) -> bool:
        """Whether the subscription must be recreated or reauthorized."""
        return self in (
            LifecycleEvent.REAUTHORIZATION_REQUIRED,
            LifecycleEvent.SUBSCRIPTION_REMOVED,
        )


class Notification(BaseModel):
    """A single data change notification."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    change_type: ChangeType = Field(..., alias="changeType")
    resource: str = Field(..., min_length=1)
    client_state: str | None = Field(default=None, alias="clientState")
    subscription_id: str | None = Field(default=None, alias="subscriptionId")
    tenant_id: str | None = Field(default=None, alias="tenantId")


class LifecycleNotification(BaseModel):
    """A subscription-health notification.

    lifecycle_event is kept as a raw string so events Graph adds later are
    accepted and ignored rather than rejected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    lifecycle_event: str = Field(..., min_length=1, alias="lifecycleEvent")
    subscription_id: str | None = Field(default=None, alias="subscriptionId")
    client_state: str | None = Field(default=None, alias="clientState")

    @property
    def known_event(self) -> LifecycleEvent | None:
        try:
            return LifecycleEvent(self.lifecycle_event)
        except ValueError:
            return None

    @property
    def requires_resync(self) -> bool:
        event = self.known_event
        return event is not None and event.requires_resync


# teams('T')/channels('C')/messages('M')[/replies('R')]
_ODATA_RESOURCE = re.compile(
    r"/?teams\('([^']+)'\)/channels\('([^']+)'\)/messages\('([^']+)'\)"
    r"(?:/replies\('([^']+)'\))?"
)
# /teams/T/channels/C/messages/M[/replies/R]
_SEGMENT_RESOURCE = re.compile(
    r"/?teams/([^/]+)/channels/([^/]+)/messages/([^/]+)(?:/replies/([^/]+))?"
)


class ResourcePath(BaseModel):
    """Team, channel and message ids parsed from a notification resource."""

    model_config = ConfigDict(frozen=True)

    team_id: str
    channel_id: str
    message_id: str
    reply_id: str | None = None

    @classmethod
    def parse(cls, resource: str) -> ResourcePath | None:
        """Parse a channel message resource string.

        Returns:
            The parsed path, or None when the resource is not a channel message.

        Examples:
            >>> ResourcePath.parse("teams('t1')/channels('c1')/messages('m1')").team_id
            't1'
            >>> ResourcePath.parse("/users/u1") is None
            True
        """
        for pattern in (_ODATA_RESOURCE, _SEGMENT_RESOURCE):
            match = pattern.fullmatch(resource.strip())
            if match:
                team_id, channel_id, message_id, reply_id = match.groups()
                return cls(
                    team_id=team_id,
                    channel_id=channel_id,
                    message_id=message_id,
                    reply_id=reply_id,
                )
        return None


def _value_array(body: Any, message: str) -> list[Any]:
    if not isinstance(body, dict):
        raise ValidationFailure(message)
    value = body.get("value")
    if not isinstance(value, list):
        raise ValidationFailure(message)
    return value


def parse_notifications(body: Any) -> list[Notification]:
    """Parse a data notification batch.

    Elements that do not look like notifications are dropped with a warning;
    the rest of the batch is still processed.

    Raises:
        ValidationFailure: If the body has no ``value`` array
    """
    items = _value_array(body, "Invalid notification payload")
    notifications: list[Notification] = []
    for index, item in enumerate(items):
        try:
            notifications.append(Notification.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping malformed notification #%d: %s", index, e.errors())
    return notifications


def parse_lifecycle_notification(body: Any) -> LifecycleNotification:
    """Parse the first element of a lifecycle notification batch.

    Raises:
        ValidationFailure: If there is no first element carrying lifecycleEvent
    """
    message = "Invalid lifecycle notification payload"
    items = _value_array(body, message)
    if not items:
        raise ValidationFailure(message)
    try:
        return LifecycleNotification.model_validate(items[0])
    except ValidationError as e:
        raise ValidationFailure(message) from e


def verify_client_state(
    client_states: list[str | None],
    expected: str,
) -> None:
    """Check that every notification in a batch carries the expected clientState.

    Raises:
        ClientStateMismatch: On the first missing or differing value
    """
    for received in client_states:
        if received != expected:
            raise ClientStateMismatch("Invalid client state", received=received)
