"""Repositories for the persistent cache tier and the session snapshot."""

import json
import sqlite3
from datetime import UTC, datetime

from stashbattle.db.connection import get_connection
from stashbattle.models.cache import CacheBucket, CacheEntry
from stashbattle.models.scene import Scene
from stashbattle.models.session import SessionState

SESSION_STATE_KEY = "battle-state"


class CacheEntryRepository:
    """Repository for cached scene listings."""

    def get(self, bucket: CacheBucket) -> CacheEntry | None:
        """Get the cached entry for a bucket, if any."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM scene_cache WHERE bucket = ?",
                (bucket.value,),
            ).fetchone()
            if row:
                return self._row_to_entry(row)
            return None

    def put(self, entry: CacheEntry) -> None:
        """Store an entry, replacing whatever the bucket held."""
        items_json = json.dumps([scene.model_dump(mode="json") for scene in entry.items])
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO scene_cache (bucket, items_json, count, filter_key, fetched_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(bucket) DO UPDATE SET
                    items_json = excluded.items_json,
                    count = excluded.count,
                    filter_key = excluded.filter_key,
                    fetched_at = excluded.fetched_at
                """,
                (
                    entry.bucket.value,
                    items_json,
                    entry.count,
                    entry.filter_key,
                    entry.fetched_at,
                ),
            )
            conn.commit()

    def delete(self, bucket: CacheBucket) -> None:
        """Drop a single bucket."""
        with get_connection() as conn:
            conn.execute("DELETE FROM scene_cache WHERE bucket = ?", (bucket.value,))
            conn.commit()

    def clear(self) -> None:
        """Drop every cached listing."""
        with get_connection() as conn:
            conn.execute("DELETE FROM scene_cache")
            conn.commit()

    def _row_to_entry(self, row: sqlite3.Row) -> CacheEntry:
        """Convert a database row to a CacheEntry model."""
        items = [Scene.model_validate(item) for item in json.loads(row["items_json"])]
        return CacheEntry(
            bucket=CacheBucket(row["bucket"]),
            items=items,
            count=row["count"],
            filter_key=row["filter_key"],
            fetched_at=row["fetched_at"],
        )


class SessionStateRepository:
    """Repository for the single persisted battle session."""

    def __init__(self, key: str = SESSION_STATE_KEY) -> None:
        self.key = key

    def load(self) -> SessionState | None:
        """Get the saved session, or None when nothing was saved yet."""
        with get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM session_state WHERE key = ?",
                (self.key,),
            ).fetchone()
            if row:
                return SessionState.model_validate_json(row["value"])
            return None

    def save(self, state: SessionState) -> None:
        """Overwrite the saved session."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO session_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (self.key, state.model_dump_json(), datetime.now(UTC).isoformat()),
            )
            conn.commit()

    def clear(self) -> None:
        """Forget the saved session."""
        with get_connection() as conn:
            conn.execute("DELETE FROM session_state WHERE key = ?", (self.key,))
            conn.commit()
