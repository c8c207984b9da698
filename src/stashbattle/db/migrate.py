"""Database migrations for Stash Battle."""

import logging

from stashbattle.db.connection import get_connection

logger = logging.getLogger(__name__)

SCHEMA = """
-- Persistent tier of the scene cache: one row per bucket ('all', 'filtered')
CREATE TABLE IF NOT EXISTS scene_cache (
  bucket TEXT PRIMARY KEY,
  items_json TEXT NOT NULL,
  count INTEGER NOT NULL,
  filter_key TEXT,
  fetched_at REAL NOT NULL
);

-- Battle session snapshot, overwritten wholesale on every turn
CREATE TABLE IF NOT EXISTS session_state (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def migrate() -> None:
    """Run database migrations."""
    with get_connection() as conn:
        conn.executescript(SCHEMA)
        conn.commit()
    logger.info("Database migrations complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    migrate()
    print("✓ Database migrations complete")
