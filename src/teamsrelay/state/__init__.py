"""State management module for Teams Relay.

This module provides SQLite-based key/value persistence for:
- The cached Graph credential (namespace "kv")
- Subscription signals (namespace "signals")

Usage:
    from teamsrelay.state import StateStore, load_signals
    from teamsrelay.paths import get_default_db_path

    store = StateStore(get_default_db_path())
    signals = load_signals(store.namespace("signals"))
"""

from teamsrelay.state.migrations import CURRENT_SCHEMA_VERSION, migrate_database
from teamsrelay.state.signals import (
    SUBSCRIPTION_EXPIRY_KEY,
    SUBSCRIPTION_ID_KEY,
    SignalUpdates,
    SubscriptionSignals,
    apply_signal_updates,
    cleared_updates,
    load_signals,
)
from teamsrelay.state.store import (
    SIGNAL_NAMESPACE,
    TOKEN_NAMESPACE,
    InMemoryKeyValueStore,
    KeyValueStore,
    NamespacedStore,
    StateStore,
    StoredEntry,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "SIGNAL_NAMESPACE",
    "SUBSCRIPTION_EXPIRY_KEY",
    "SUBSCRIPTION_ID_KEY",
    "TOKEN_NAMESPACE",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "NamespacedStore",
    "SignalUpdates",
    "StateStore",
    "StoredEntry",
    "SubscriptionSignals",
    "apply_signal_updates",
    "cleared_updates",
    "load_signals",
    "migrate_database",
]
