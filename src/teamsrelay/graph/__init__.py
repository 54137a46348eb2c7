"""Microsoft Graph integration for Teams Relay.

This module provides:
- Client-credentials authentication and token caching
- A single-attempt Graph REST client
- Subscription lifecycle management
- Change-notification payload models
"""

from teamsrelay.graph.auth import (
    AuthFailure,
    Credential,
    IdentityProviderClient,
    TokenCache,
    mask_token,
)
from teamsrelay.graph.client import ApiFailure, ResourceApiClient
from teamsrelay.graph.notifications import (
    ChangeType,
    ClientStateMismatch,
    LifecycleEvent,
    LifecycleNotification,
    Notification,
    ResourcePath,
    ValidationFailure,
    parse_lifecycle_notification,
    parse_notifications,
    verify_client_state,
)
from teamsrelay.graph.subscriptions import (
    SubscriptionAction,
    SubscriptionManager,
    SubscriptionResult,
)

__all__ = [
    "ApiFailure",
    "AuthFailure",
    "ChangeType",
    "ClientStateMismatch",
    "Credential",
    "IdentityProviderClient",
    "LifecycleEvent",
    "LifecycleNotification",
    "Notification",
    "ResourceApiClient",
    "ResourcePath",
    "SubscriptionAction",
    "SubscriptionManager",
    "SubscriptionResult",
    "TokenCache",
    "ValidationFailure",
    "mask_token",
    "parse_lifecycle_notification",
    "parse_notifications",
    "verify_client_state",
]
