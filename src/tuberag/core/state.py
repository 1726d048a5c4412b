"""Persistent run bookkeeping for tuberag using async SQLite.

Holds the three things an indexing run needs to remember between processes:
the append-only run ledger, the registry of indexed channels, and the set of
video ids already indexed per channel.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from tuberag.core.exceptions import StateError
from tuberag.core.models import ChannelRecord, IndexingLedgerEntry


class StateManager:
    """Manages ledger and channel state in SQLite."""

    def __init__(self, db_path: str | Path):
        """Initialize StateManager with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database in WAL mode and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.execute("PRAGMA journal_mode=WAL")

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS channels (
                channel_id TEXT PRIMARY KEY,
                channel_name TEXT NOT NULL,
                video_count INTEGER NOT NULL DEFAULT 0,
                total_chunks INTEGER NOT NULL DEFAULT 0,
                indexed_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS indexed_videos (
                channel_id TEXT NOT NULL,
                video_id TEXT NOT NULL,
                indexed_at TEXT NOT NULL,
                PRIMARY KEY (channel_id, video_id),
                FOREIGN KEY (channel_id) REFERENCES channels(channel_id) ON DELETE CASCADE
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS indexing_ledger (
                entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                channel_id TEXT NOT NULL,
                state TEXT NOT NULL,
                started_at TEXT NOT NULL,
                payload TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_channel
            ON indexing_ledger(channel_id)
        """)

        await self._db.commit()

    def _now_iso8601(self) -> str:
        return datetime.now(UTC).isoformat()

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise StateError("Database not initialized. Call initialize() first.")
        return self._db

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def append_ledger_entry(self, entry: IndexingLedgerEntry) -> int:
        """Append one run outcome. Returns the entry id."""
        db = self._conn()
        try:
            cursor = await db.execute(
                "INSERT INTO indexing_ledger (channel_id, state, started_at, payload) "
                "VALUES (?, ?, ?, ?)",
                (
                    entry.channel_id,
                    str(entry.state),
                    entry.started_at.isoformat(),
                    entry.model_dump_json(),
                ),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise StateError(f"Failed to append ledger entry: {exc}") from exc
        return int(cursor.lastrowid or 0)

    async def get_ledger(
        self, channel_id: str | None = None, limit: int | None = None
    ) -> list[IndexingLedgerEntry]:
        """Return ledger entries, oldest first."""
        db = self._conn()
        query = "SELECT payload FROM indexing_ledger"
        params: list[Any] = []
        if channel_id is not None:
            query += " WHERE channel_id = ?"
            params.append(channel_id)
        query += " ORDER BY entry_id"

        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        entries = [IndexingLedgerEntry.model_validate_json(row[0]) for row in rows]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _row_to_channel(self, row: Any) -> ChannelRecord:
        return ChannelRecord(
            channel_id=row[0],
            channel_name=row[1],
            video_count=row[2],
            total_chunks=row[3],
            indexed_at=datetime.fromisoformat(row[4]),
            updated_at=datetime.fromisoformat(row[5]),
        )

    async def get_channel(self, channel_id: str) -> ChannelRecord | None:
        db = self._conn()
        async with db.execute(
            "SELECT channel_id, channel_name, video_count, total_chunks, indexed_at, updated_at "
            "FROM channels WHERE channel_id = ?",
            (channel_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_channel(row) if row else None

    async def list_channels(self) -> list[ChannelRecord]:
        db = self._conn()
        async with db.execute(
            "SELECT channel_id, channel_name, video_count, total_chunks, indexed_at, updated_at "
            "FROM channels ORDER BY indexed_at"
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_channel(row) for row in rows]

    async def is_channel_indexed(self, channel_id: str) -> bool:
        return await self.get_channel(channel_id) is not None

    async def record_channel_run(
        self,
        channel_id: str,
        channel_name: str,
        videos_added: int,
        chunks_added: int,
        video_ids: list[str],
    ) -> ChannelRecord:
        """Add a finished run's counts and video ids to the channel registry.

        Counts accumulate across incremental runs.
        """
        db = self._conn()
        now = self._now_iso8601()
        try:
            await db.execute(
                "INSERT INTO channels "
                "(channel_id, channel_name, video_count, total_chunks, indexed_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(channel_id) DO UPDATE SET "
                "channel_name = excluded.channel_name, "
                "video_count = channels.video_count + excluded.video_count, "
                "total_chunks = channels.total_chunks + excluded.total_chunks, "
                "updated_at = excluded.updated_at",
                (channel_id, channel_name, videos_added, chunks_added, now, now),
            )
            await db.executemany(
                "INSERT OR IGNORE INTO indexed_videos (channel_id, video_id, indexed_at) "
                "VALUES (?, ?, ?)",
                [(channel_id, video_id, now) for video_id in video_ids],
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise StateError(f"Failed to record channel run for {channel_id}: {exc}") from exc

        record = await self.get_channel(channel_id)
        assert record is not None
        return record

    async def remove_channel(self, channel_id: str) -> bool:
        """Forget a channel and its indexed video ids. Vectors are not touched."""
        db = self._conn()
        cursor = await db.execute("DELETE FROM channels WHERE channel_id = ?", (channel_id,))
        await db.commit()
        return cursor.rowcount > 0

    async def get_indexed_video_ids(self, channel_id: str) -> set[str]:
        db = self._conn()
        async with db.execute(
            "SELECT video_id FROM indexed_videos WHERE channel_id = ?", (channel_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def total_indexed_videos(self) -> int:
        db = self._conn()
        async with db.execute("SELECT COUNT(*) FROM indexed_videos") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> StateManager:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
