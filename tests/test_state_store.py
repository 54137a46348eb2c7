"""Tests for the SQLite key/value store and subscription signals."""

from __future__ import annotations

import sqlite3
import stat
from typing import TYPE_CHECKING

import pytest

from teamsrelay.state import (
    CURRENT_SCHEMA_VERSION,
    SIGNAL_NAMESPACE,
    SUBSCRIPTION_EXPIRY_KEY,
    SUBSCRIPTION_ID_KEY,
    TOKEN_NAMESPACE,
    InMemoryKeyValueStore,
    StateStore,
    SubscriptionSignals,
    apply_signal_updates,
    cleared_updates,
    load_signals,
    migrate_database,
)
from teamsrelay.state.migrations import get_schema_version

if TYPE_CHECKING:
    from pathlib import Path


class TestMigrations:
    def test_fresh_database_is_migrated(self, state_store: StateStore) -> None:
        conn = sqlite3.connect(state_store.db_path)
        try:
            assert get_schema_version(conn) == CURRENT_SCHEMA_VERSION
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()

        assert {"schema_version", "kv_entries"} <= tables

    def test_migration_is_idempotent(self, test_db_path: Path) -> None:
        StateStore(test_db_path).close()

        conn = sqlite3.connect(test_db_path)
        try:
            assert migrate_database(conn) == CURRENT_SCHEMA_VERSION
        finally:
            conn.close()

    def test_invalid_target_version(self, test_db_path: Path) -> None:
        conn = sqlite3.connect(test_db_path)
        try:
            with pytest.raises(ValueError, match="Invalid target version"):
                migrate_database(conn, CURRENT_SCHEMA_VERSION + 1)
        finally:
            conn.close()


class TestStateStore:
    def test_database_file_is_private(self, state_store: StateStore) -> None:
        mode = stat.S_IMODE(state_store.db_path.stat().st_mode)
        assert mode == 0o600

    def test_creates_parent_directories(self, temp_dir: Path) -> None:
        store = StateStore(temp_dir / "nested" / "dir" / "state.db")
        try:
            assert store.db_path.exists()
        finally:
            store.close()

    def test_set_get_delete(self, state_store: StateStore) -> None:
        assert state_store.get(TOKEN_NAMESPACE, "k") is None

        state_store.set(TOKEN_NAMESPACE, "k", "v1")
        state_store.set(TOKEN_NAMESPACE, "k", "v2")
        assert state_store.get(TOKEN_NAMESPACE, "k") == "v2"

        state_store.delete(TOKEN_NAMESPACE, "k")
        assert state_store.get(TOKEN_NAMESPACE, "k") is None

    def test_delete_missing_key_is_noop(self, state_store: StateStore) -> None:
        state_store.delete(SIGNAL_NAMESPACE, "never-written")

    def test_namespaces_are_isolated(self, state_store: StateStore) -> None:
        tokens = state_store.namespace(TOKEN_NAMESPACE)
        signals = state_store.namespace(SIGNAL_NAMESPACE)

        tokens.set("shared", "token-side")
        signals.set("shared", "signal-side")

        assert tokens.get("shared") == "token-side"
        assert signals.get("shared") == "signal-side"

    def test_values_survive_reopen(self, test_db_path: Path) -> None:
        store = StateStore(test_db_path)
        store.namespace(SIGNAL_NAMESPACE).set(SUBSCRIPTION_ID_KEY, "sub-1")
        store.close()

        reopened = StateStore(test_db_path)
        try:
            assert reopened.namespace(SIGNAL_NAMESPACE).get(SUBSCRIPTION_ID_KEY) == "sub-1"
        finally:
            reopened.close()

    def test_list_entries(self, state_store: StateStore) -> None:
        state_store.set(SIGNAL_NAMESPACE, "b", "2")
        state_store.set(SIGNAL_NAMESPACE, "a", "1")
        state_store.set(TOKEN_NAMESPACE, "z", "9")

        assert [e.key for e in state_store.list_entries(SIGNAL_NAMESPACE)] == ["a", "b"]
        assert [(e.namespace, e.key) for e in state_store.list_entries()] == [
            (TOKEN_NAMESPACE, "z"),
            (SIGNAL_NAMESPACE, "a"),
            (SIGNAL_NAMESPACE, "b"),
        ]
        assert all(e.updated_at for e in state_store.list_entries())

    def test_transaction_rolls_back(self, state_store: StateStore) -> None:
        with pytest.raises(RuntimeError), state_store.transaction() as conn:
            conn.execute(
                "INSERT INTO kv_entries (namespace, key, value) VALUES (?, ?, ?)",
                (SIGNAL_NAMESPACE, "partial", "x"),
            )
            raise RuntimeError("abort")

        assert state_store.get(SIGNAL_NAMESPACE, "partial") is None


class TestSignals:
    def test_load_empty(self) -> None:
        signals = load_signals(InMemoryKeyValueStore())

        assert signals == SubscriptionSignals()
        assert not signals.is_complete

    def test_load_complete(self) -> None:
        store = InMemoryKeyValueStore({
            SUBSCRIPTION_ID_KEY: "sub-1",
            SUBSCRIPTION_EXPIRY_KEY: "1768300000000",
        })

        signals = load_signals(store)

        assert signals == SubscriptionSignals("sub-1", 1768300000000)
        assert signals.is_complete

    def test_unparseable_expiry_is_missing(self) -> None:
        store = InMemoryKeyValueStore({
            SUBSCRIPTION_ID_KEY: "sub-1",
            SUBSCRIPTION_EXPIRY_KEY: "tomorrow",
        })

        signals = load_signals(store)

        assert signals.subscription_id == "sub-1"
        assert signals.subscription_expiry_ms is None
        assert not signals.is_complete

    def test_apply_updates_sets_and_deletes(self) -> None:
        store = InMemoryKeyValueStore({SUBSCRIPTION_EXPIRY_KEY: "1"})

        apply_signal_updates(store, SubscriptionSignals("sub-2", 42).to_updates())
        assert store.data == {SUBSCRIPTION_ID_KEY: "sub-2", SUBSCRIPTION_EXPIRY_KEY: "42"}

        apply_signal_updates(store, cleared_updates())
        assert store.data == {}
