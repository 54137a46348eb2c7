"""Subscription signals.

Signals are the durable facts about the single change-notification
subscription: its id and its expiry. They are owned by the Integration
orchestrator, handed to the SubscriptionManager as input and written back
from the sync outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from teamsrelay.state.store import KeyValueStore

logger = logging.getLogger(__name__)

SUBSCRIPTION_ID_KEY = "subscription_id"
SUBSCRIPTION_EXPIRY_KEY = "subscription_expiry"

# Mapping of signal key to new value; None removes the key
SignalUpdates = dict[str, str | None]


@dataclass(frozen=True)
class SubscriptionSignals:
    """Stored subscription id and expiry.

    Attributes:
        subscription_id: Graph subscription ID, if one is known
        subscription_expiry_ms: Expiry in epoch milliseconds, if known
    """

    subscription_id: str | None = None
    subscription_expiry_ms: int | None = None

    @property
    def is_complete(self) -> bool:
        """Both id and expiry are known."""
        return bool(self.subscription_id) and self.subscription_expiry_ms is not None

    def to_updates(self) -> SignalUpdates:
        """Express these signals as a full overwrite."""
        return {
            SUBSCRIPTION_ID_KEY: self.subscription_id,
            SUBSCRIPTION_EXPIRY_KEY: (
                None if self.subscription_expiry_ms is None else str(self.subscription_expiry_ms)
            ),
        }


def cleared_updates() -> SignalUpdates:
    """Updates that remove both signals."""
    return SubscriptionSignals().to_updates()


def load_signals(store: KeyValueStore) -> SubscriptionSignals:
    """Read the signals, treating an unparseable expiry as missing."""
    subscription_id = store.get(SUBSCRIPTION_ID_KEY) or None
    raw_expiry = store.get(SUBSCRIPTION_EXPIRY_KEY)

    expiry_ms: int | None = None
    if raw_expiry:
        try:
            expiry_ms = int(raw_expiry)
        except ValueError:
            logger.warning("Ignoring unparseable subscription expiry: %r", raw_expiry)

    return SubscriptionSignals(subscription_id=subscription_id, subscription_expiry_ms=expiry_ms)


def apply_signal_updates(store: KeyValueStore, updates: SignalUpdates) -> None:
    """Write signal updates, deleting keys whose new value is None."""
    for key, value in updates.items():
        if value is None:
            store.delete(key)
        else:
            store.set(key, value)
