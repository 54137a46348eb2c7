"""Integration orchestrator.

Ties the Graph clients, the subscription manager, the router and the state
store together behind the host lifecycle hooks:

- sync: refresh the token, verify API access, reconcile the subscription
- drain: delete the subscription, best effort
- refresh_token: scheduled forced token refresh
- request_resync: lifecycle-notification target, runs sync and never raises
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from teamsrelay.clock import SystemTimeProvider
from teamsrelay.delivery import DeliveryExecutor
from teamsrelay.graph.auth import AuthFailure, IdentityProviderClient, TokenCache
from teamsrelay.graph.client import ApiFailure, ResourceApiClient
from teamsrelay.graph.subscriptions import SubscriptionManager
from teamsrelay.logging import log_sync_complete
from teamsrelay.routing import NotificationRouter, StaticConsumerRegistry
from teamsrelay.state import (
    SIGNAL_NAMESPACE,
    TOKEN_NAMESPACE,
    SubscriptionSignals,
    apply_signal_updates,
    cleared_updates,
    load_signals,
)

if TYPE_CHECKING:
    from teamsrelay.clock import TimeProvider
    from teamsrelay.config.schema import Config
    from teamsrelay.graph.auth import Credential
    from teamsrelay.routing import ConsumerSink
    from teamsrelay.state import KeyValueStore, SignalUpdates, StateStore

logger = logging.getLogger(__name__)

AUTH_FAILED = "Authentication failed, see logs"
API_ACCESS_FAILED = "API access failed, see logs"
SUBSCRIPTION_FAILED = "Subscription failed, see logs"
DELETE_FAILED = "Failed to delete subscription, see logs"


class SyncStatus(str, Enum):
    READY = "ready"
    FAILED = "failed"


@dataclass
class SyncOutcome:
    """Result of a sync.

    Attributes:
        status: ready or failed
        description: Short failure reason for operators
        action: Subscription action taken (created, renewed, valid, deleted)
        signal_updates: Signal changes written by this sync
    """

    status: SyncStatus
    description: str | None = None
    action: str | None = None
    signal_updates: SignalUpdates = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.READY


class Integration:
    """Host lifecycle hooks for the Teams change-notification relay."""

    def __init__(
        self,
        config: Config,
        *,
        tokens: TokenCache,
        api: ResourceApiClient,
        subscriptions: SubscriptionManager,
        router: NotificationRouter,
        signal_store: KeyValueStore,
        owned_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.tokens = tokens
        self.api = api
        self.subscriptions = subscriptions
        self.router = router
        self.signal_store = signal_store
        self._owned_client = owned_client

    @classmethod
    def from_config(
        cls,
        config: Config,
        state: StateStore,
        *,
        time_provider: TimeProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
        sink: ConsumerSink | None = None,
    ) -> Integration:
        """Wire every component from configuration.

        Args:
            config: Validated configuration
            state: Open state store
            time_provider: Clock (default: system clock)
            http_client: Shared client for Graph, Entra ID and consumer targets
            sink: Consumer fan-out sink (default: DeliveryExecutor)
        """
        time_provider = time_provider or SystemTimeProvider()
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=30.0)

        identity = IdentityProviderClient(
            config.tenant.tenant_id,
            config.tenant.client_id,
            config.tenant.client_secret,
            time_provider=time_provider,
            client=client,
        )
        tokens = TokenCache(
            state.namespace(TOKEN_NAMESPACE),
            identity,
            time_provider=time_provider,
        )
        api = ResourceApiClient(client=client)
        subscriptions = SubscriptionManager(
            api,
            tokens,
            client_state=config.webhook.client_state,
            time_provider=time_provider,
        )
        router = NotificationRouter(
            StaticConsumerRegistry.from_config(config),
            tokens,
            api,
            sink or DeliveryExecutor(client=client),
        )
        return cls(
            config,
            tokens=tokens,
            api=api,
            subscriptions=subscriptions,
            router=router,
            signal_store=state.namespace(SIGNAL_NAMESPACE),
            owned_client=client if owns_client else None,
        )

    async def aclose(self) -> None:
        """Close HTTP clients created by from_config."""
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None

    async def sync(self) -> SyncOutcome:
        """Refresh credentials and reconcile the subscription.

        Returns:
            SyncOutcome; signal updates have already been written to the store.
        """
        started = time.monotonic()
        outcome = await self._sync()
        if outcome.signal_updates:
            apply_signal_updates(self.signal_store, outcome.signal_updates)
        log_sync_complete(
            outcome.status.value,
            outcome.action,
            (time.monotonic() - started) * 1000,
            outcome.description,
        )
        return outcome

    async def _sync(self) -> SyncOutcome:
        try:
            credential = await self.tokens.refresh(trigger="sync")
        except AuthFailure as e:
            logger.error("Token exchange failed during sync: %s", e)
            return SyncOutcome(status=SyncStatus.FAILED, description=AUTH_FAILED)

        try:
            await self.api.call("/organization", credential.bearer_token)
        except ApiFailure as e:
            logger.error("Graph API access check failed: %s", e)
            return SyncOutcome(status=SyncStatus.FAILED, description=API_ACCESS_FAILED)

        signals = load_signals(self.signal_store)

        if self.config.subscriptions.enabled:
            try:
                result = await self.subscriptions.ensure(
                    self.config.webhook.notification_url,
                    self.config.webhook.lifecycle_url,
                    signals,
                )
            except (ApiFailure, AuthFailure) as e:
                logger.error("Subscription reconciliation failed: %s", e)
                return SyncOutcome(status=SyncStatus.FAILED, description=SUBSCRIPTION_FAILED)

            return SyncOutcome(
                status=SyncStatus.READY,
                action=result.action.value,
                signal_updates=SubscriptionSignals(
                    subscription_id=result.subscription_id,
                    subscription_expiry_ms=result.subscription_expiry_ms,
                ).to_updates(),
            )

        if signals.subscription_id:
            deleted = await self.subscriptions.teardown(signals.subscription_id)
            if not deleted:
                return SyncOutcome(status=SyncStatus.FAILED, description=DELETE_FAILED)
            return SyncOutcome(
                status=SyncStatus.READY,
                action="deleted",
                signal_updates=cleared_updates(),
            )

        return SyncOutcome(status=SyncStatus.READY)

    async def drain(self) -> bool:
        """Delete the stored subscription. Never raises.

        Signals are left in place; the next sync reconciles them.

        Returns:
            True if there was nothing to delete or the delete succeeded
        """
        signals = load_signals(self.signal_store)
        if not signals.subscription_id:
            return True
        return await self.subscriptions.teardown(signals.subscription_id)

    async def refresh_token(self) -> Credential | None:
        """Scheduled forced refresh. Failures are logged, never raised."""
        try:
            return await self.tokens.refresh(trigger="schedule")
        except Exception:
            logger.exception("Scheduled token refresh failed")
            return None

    async def request_resync(self) -> SyncOutcome | None:
        """Run a sync on behalf of a lifecycle notification. Never raises."""
        try:
            return await self.sync()
        except Exception:
            logger.exception("Lifecycle-triggered resync failed")
            return None
