"""SQLite implementation of the QuotaStore protocol."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from tuberag.core.exceptions import StateError
from tuberag.core.models import QuotaState
from tuberag.core.protocols.quota_store import QuotaStore

PathLike = str | Path


class SqliteQuotaStore:
    """SQLite-backed implementation of QuotaStore.

    Keeps a single row per ``key`` (one per metered source) in a WAL-mode
    database. The table is created on first use.

    Args:
        db_path: Path to the SQLite database file.
        key: Row key, so several quota budgets can share one database.

    Example:
        store = SqliteQuotaStore("./tuberag.db")
        store.save(state)
        assert store.load() == state
    """

    def __init__(self, db_path: PathLike, key: str = "youtube") -> None:
        self._db_path = Path(db_path)
        self._key = key
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_table()

    def _initialize_table(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                "CREATE TABLE IF NOT EXISTS quota_state ("
                "key TEXT PRIMARY KEY,"
                "units_used INTEGER NOT NULL,"
                "units_limit INTEGER NOT NULL,"
                "reset_at TEXT NOT NULL,"
                "last_updated TEXT"
                ")"
            )
            conn.commit()

    def load(self) -> QuotaState | None:
        """Return the saved state for this key, if any."""
        try:
            with sqlite3.connect(self._db_path) as conn:
                row = conn.execute(
                    "SELECT units_used, units_limit, reset_at, last_updated "
                    "FROM quota_state WHERE key = ?",
                    (self._key,),
                ).fetchone()
        except sqlite3.DatabaseError as exc:
            raise StateError(f"quota store database failure: {exc}") from exc

        if row is None:
            return None
        return QuotaState(
            units_used=int(row[0]),
            units_limit=int(row[1]),
            reset_at=datetime.fromisoformat(row[2]),
            last_updated=datetime.fromisoformat(row[3]) if row[3] else None,
        )

    def save(self, state: QuotaState) -> None:
        """Overwrite the saved state.

        Raises:
            StateError: If the database write fails.
        """
        try:
            with sqlite3.connect(self._db_path) as conn:
                conn.execute(
                    "INSERT INTO quota_state (key, units_used, units_limit, reset_at, last_updated) "
                    "VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET "
                    "units_used = excluded.units_used, "
                    "units_limit = excluded.units_limit, "
                    "reset_at = excluded.reset_at, "
                    "last_updated = excluded.last_updated",
                    (
                        self._key,
                        state.units_used,
                        state.units_limit,
                        state.reset_at.isoformat(),
                        state.last_updated.isoformat() if state.last_updated else None,
                    ),
                )
                conn.commit()
        except sqlite3.DatabaseError as exc:
            raise StateError(f"quota store database failure: {exc}") from exc


# Verify protocol conformance at runtime
assert issubclass(SqliteQuotaStore, QuotaStore)
