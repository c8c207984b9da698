"""Scene cache entry models."""

from enum import Enum

from pydantic import BaseModel, Field

from stashbattle.models.scene import Scene


class CacheBucket(str, Enum):
    """Named cache slots."""

    ALL = "all"
    FILTERED = "filtered"


class CacheEntry(BaseModel):
    """A cached scene listing.

    Items are sorted by rating, highest first. The filtered bucket also
    records which filter produced it.
    """

    bucket: CacheBucket
    items: list[Scene] = Field(default_factory=list)
    count: int = 0
    filter_key: str | None = None
    fetched_at: float = Field(description="Unix timestamp of the fetch")

    def age(self, now: float) -> float:
        """Seconds since this entry was fetched."""
        return max(0.0, now - self.fetched_at)
