"""Key/value state persistence.

The relay runs as a stateless process; everything it must remember across
restarts (the cached Graph credential and the subscription signals) lives in
a small namespaced key/value store:

- KeyValueStore: the protocol every component depends on
- StateStore: SQLite database with migrations, WAL mode and chmod 600
- NamespacedStore: a KeyValueStore view over one StateStore namespace
- InMemoryKeyValueStore: dict-backed implementation for tests and dry runs
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from teamsrelay.state.migrations import migrate_database

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

# Namespace holding the cached credential
TOKEN_NAMESPACE = "kv"
# Namespace holding subscription signals
SIGNAL_NAMESPACE = "signals"


class KeyValueStore(Protocol):
    """String key/value storage with last-writer-wins semantics."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


@dataclass(frozen=True)
class StoredEntry:
    """A single stored value with its last write time (UTC, SQLite format)."""

    namespace: str
    key: str
    value: str
    updated_at: str


class StateStore:
    """SQLite-based key/value persistence.

    The database file is created with chmod 600 because it holds a live
    bearer token.

    Args:
        db_path: Path to the SQLite database file

    Example:
        >>> from teamsrelay.paths import get_default_db_path
        >>> store = StateStore(get_default_db_path())
        >>> tokens = store.namespace("kv")
        >>> tokens.set("ms_graph_token_expiry", "1767225600000")
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self._conn: sqlite3.Connection | None = None

        self._ensure_database()

    def _ensure_database(self) -> None:
        """Create the directory, run migrations and restrict permissions."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        is_new = not self.db_path.exists()

        conn = self._get_connection()
        migrate_database(conn)

        if is_new and self.db_path.exists():
            try:
                os.chmod(self.db_path, 0o600)  # noqa: PTH101
                logger.debug("Set database permissions to 600: %s", self.db_path)
            except OSError as e:
                logger.warning("Could not set database permissions: %s", e)

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            # Webhook handlers and scheduler jobs share one event loop thread,
            # but uvicorn may construct the store on a different thread.
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for transactional operations.

        Yields:
            The database connection

        Raises:
            Exception: Re-raises any exception after rollback
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # Key/value operations
    # -------------------------------------------------------------------------

    def get(self, namespace: str, key: str) -> str | None:
        """Read a value, or None when the key was never written or was deleted."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT value FROM kv_entries WHERE namespace = ? AND key = ?",
            (namespace, key),
        ).fetchone()
        return None if row is None else row["value"]

    def set(self, namespace: str, key: str, value: str) -> None:
        """Overwrite a value."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO kv_entries (namespace, key, value, updated_at)
                VALUES (?, ?, ?, datetime('now'))
                """,
                (namespace, key, value),
            )

    def delete(self, namespace: str, key: str) -> None:
        """Remove a value. Deleting a missing key is not an error."""
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM kv_entries WHERE namespace = ? AND key = ?",
                (namespace, key),
            )

    def list_entries(self, namespace: str | None = None) -> list[StoredEntry]:
        """List stored entries, optionally restricted to one namespace.

        Args:
            namespace: Namespace to list (default: all)

        Returns:
            Entries ordered by namespace then key
        """
        conn = self._get_connection()
        if namespace is None:
            cursor = conn.execute(
                "SELECT namespace, key, value, updated_at FROM kv_entries "
                "ORDER BY namespace, key"
            )
        else:
            cursor = conn.execute(
                "SELECT namespace, key, value, updated_at FROM kv_entries "
                "WHERE namespace = ? ORDER BY key",
                (namespace,),
            )
        return [
            StoredEntry(
                namespace=row["namespace"],
                key=row["key"],
                value=row["value"],
                updated_at=row["updated_at"],
            )
            for row in cursor.fetchall()
        ]

    def namespace(self, name: str) -> NamespacedStore:
        """Get a KeyValueStore view bound to one namespace."""
        return NamespacedStore(self, name)


class NamespacedStore:
    """KeyValueStore backed by a single StateStore namespace."""

    def __init__(self, store: StateStore, namespace: str) -> None:
        self._store = store
        self.namespace = namespace

    def get(self, key: str) -> str | None:
        return self._store.get(self.namespace, key)

    def set(self, key: str, value: str) -> None:
        self._store.set(self.namespace, key, value)

    def delete(self, key: str) -> None:
        self._store.delete(self.namespace, key)


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)
