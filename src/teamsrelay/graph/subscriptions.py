"""Change-notification subscription lifecycle.

The relay owns exactly one Graph subscription on /teams/getAllMessages.
Each reconciliation makes one of three decisions:

- valid: more than 24 hours remain, nothing is sent to Graph
- renewed: PATCH a new expiry onto the existing subscription
- created: POST a new subscription (no stored id, or renewal failed)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from teamsrelay.clock import (
    SystemTimeProvider,
    format_graph_datetime,
    now_ms,
    parse_graph_datetime,
    to_epoch_ms,
)
from teamsrelay.graph.auth import AuthFailure
from teamsrelay.graph.client import ApiFailure
from teamsrelay.logging import log_subscription_reconciled

if TYPE_CHECKING:
    from teamsrelay.clock import TimeProvider
    from teamsrelay.graph.auth import TokenCache
    from teamsrelay.graph.client import ResourceApiClient
    from teamsrelay.state.signals import SubscriptionSignals

logger = logging.getLogger(__name__)

SUBSCRIPTION_RESOURCE = "/teams/getAllMessages"
SUBSCRIPTION_CHANGE_TYPES = "created,updated"

# Graph's maximum lifetime for chat message subscriptions (just under 3 days)
SUBSCRIPTION_LIFETIME = timedelta(minutes=4230)
RENEWAL_BUFFER = timedelta(hours=24)


class SubscriptionAction(str, Enum):
    """Decision taken by a reconciliation."""

    CREATED = "created"
    RENEWED = "renewed"
    VALID = "valid"


@dataclass(frozen=True)
class SubscriptionResult:
    """Outcome of SubscriptionManager.ensure.

    Attributes:
        subscription_id: Id of the live subscription
        subscription_expiry_ms: Its expiry in epoch milliseconds
        action: What was done to get there
    """

    subscription_id: str
    subscription_expiry_ms: int
    action: SubscriptionAction


class SubscriptionManager:
    """Keeps the single change-notification subscription alive."""

    def __init__(
        self,
        api: ResourceApiClient,
        tokens: TokenCache,
        *,
        client_state: str,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self._api = api
        self._tokens = tokens
        self._client_state = client_state
        self._time = time_provider or SystemTimeProvider()

    def _new_expiry(self) -> str:
        return format_graph_datetime(self._time.now() + SUBSCRIPTION_LIFETIME)

    def _expiry_from_response(self, response: Any, requested: str) -> int:
        raw = response.get("expirationDateTime") if isinstance(response, dict) else None
        for candidate in (raw, requested):
            if isinstance(candidate, str):
                try:
                    return to_epoch_ms(parse_graph_datetime(candidate))
                except ValueError:
                    logger.warning("Unparseable subscription expiry: %r", candidate)
        return now_ms(self._time) + int(SUBSCRIPTION_LIFETIME.total_seconds() * 1000)

    async def ensure(
        self,
        notification_url: str,
        lifecycle_url: str,
        signals: SubscriptionSignals,
    ) -> SubscriptionResult:
        """Reconcile the remote subscription against the stored signals.

        Args:
            notification_url: Where Graph POSTs data notifications
            lifecycle_url: Where Graph POSTs lifecycle notifications
            signals: Stored subscription id and expiry

        Returns:
            The live subscription and the action taken

        Raises:
            ApiFailure: If a new subscription could not be created
            AuthFailure: If no token could be obtained
        """
        subscription_id = signals.subscription_id
        expiry_ms = signals.subscription_expiry_ms
        if subscription_id and expiry_ms is not None:
            remaining_ms = expiry_ms - now_ms(self._time)

            if remaining_ms > RENEWAL_BUFFER.total_seconds() * 1000:
                result = SubscriptionResult(
                    subscription_id=subscription_id,
                    subscription_expiry_ms=expiry_ms,
                    action=SubscriptionAction.VALID,
                )
                log_subscription_reconciled(
                    result.action.value, result.subscription_id, result.subscription_expiry_ms
                )
                return result

            try:
                result = await self.renew(subscription_id)
            except (ApiFailure, AuthFailure) as e:
                logger.warning(
                    "Renewal of subscription %s failed (%s), creating a new one",
                    subscription_id,
                    e,
                )
            else:
                log_subscription_reconciled(
                    result.action.value, result.subscription_id, result.subscription_expiry_ms
                )
                return result

        result = await self.create(notification_url, lifecycle_url)
        log_subscription_reconciled(
            result.action.value, result.subscription_id, result.subscription_expiry_ms
        )
        return result

    async def renew(self, subscription_id: str) -> SubscriptionResult:
        """Extend an existing subscription by the full lifetime.

        Raises:
            ApiFailure: If Graph rejected the renewal
        """
        credential = await self._tokens.get_valid_token()
        expiration = self._new_expiry()
        response = await self._api.call(
            f"/subscriptions/{subscription_id}",
            credential.bearer_token,
            method="PATCH",
            body={"expirationDateTime": expiration},
        )
        return SubscriptionResult(
            subscription_id=subscription_id,
            subscription_expiry_ms=self._expiry_from_response(response, expiration),
            action=SubscriptionAction.RENEWED,
        )

    async def create(self, notification_url: str, lifecycle_url: str) -> SubscriptionResult:
        """Create a new subscription on all channel messages.

        Raises:
            ApiFailure: If Graph rejected the request or returned no id
        """
        credential = await self._tokens.get_valid_token()
        expiration = self._new_expiry()
        response = await self._api.call(
            "/subscriptions",
            credential.bearer_token,
            method="POST",
            body={
                "changeType": SUBSCRIPTION_CHANGE_TYPES,
                "notificationUrl": notification_url,
                "lifecycleNotificationUrl": lifecycle_url,
                "resource": SUBSCRIPTION_RESOURCE,
                "expirationDateTime": expiration,
                "clientState": self._client_state,
            },
        )

        subscription_id = response.get("id") if isinstance(response, dict) else None
        if not isinstance(subscription_id, str) or not subscription_id:
            raise ApiFailure("Subscription response did not contain an id")

        return SubscriptionResult(
            subscription_id=subscription_id,
            subscription_expiry_ms=self._expiry_from_response(response, expiration),
            action=SubscriptionAction.CREATED,
        )

    async def teardown(self, subscription_id: str) -> bool:
        """Delete a subscription, best effort.

        Returns:
            True if Graph confirmed the delete, False on any failure
        """
        try:
            credential = await self._tokens.get_valid_token()
            await self._api.call(
                f"/subscriptions/{subscription_id}",
                credential.bearer_token,
                method="DELETE",
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to delete subscription %s: %s", subscription_id, e)
            return False

        log_subscription_reconciled("deleted", subscription_id, None)
        return True
