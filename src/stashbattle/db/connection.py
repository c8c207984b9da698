"""SQLite connection management.

The database only holds rebuildable data (cached scene listings) and the
battle session, so durability is relaxed to ``synchronous=NORMAL``.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from stashbattle.config import get_settings

# Seconds to wait on a locked database before failing
BUSY_TIMEOUT_SECONDS = 5.0


def get_db_path() -> Path:
    """Configured database path; its directory is created on first use."""
    db_path = get_settings().db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Open a WAL-mode connection with ``sqlite3.Row`` rows, closed on exit."""
    conn = sqlite3.connect(db_path or get_db_path(), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    try:
        yield conn
    finally:
        conn.close()
