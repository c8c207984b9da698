"""Database module for Stash Battle."""

from stashbattle.db.connection import get_connection
from stashbattle.db.repository import CacheEntryRepository, SessionStateRepository

__all__ = ["CacheEntryRepository", "SessionStateRepository", "get_connection"]
