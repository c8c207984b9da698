"""Two-tier scene cache with stale-while-revalidate refreshes.

Listing every scene from Stash is slow, so listings are kept in memory and in
SQLite. Two buckets exist: ``all`` (no filter, rating order) and ``filtered``
(one slot, overwritten whenever the filter changes). Stale entries are still
served; a single background refresh replaces them when it completes, unless
the filter changed or the bucket was invalidated in the meantime.
"""

import asyncio
import itertools
import logging
import math
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass

from stashbattle.db.repository import CacheEntryRepository
from stashbattle.gateway.filters import UNFILTERED, SceneQuery
from stashbattle.gateway.stash import GatewayError, SceneGateway
from stashbattle.models.cache import CacheBucket, CacheEntry
from stashbattle.models.scene import Scene, SceneList

logger = logging.getLogger(__name__)

CACHE_MAX_AGE_SECONDS = 5 * 60

PERSISTENT_TIER_ERRORS = (sqlite3.Error, OSError, ValueError)


def sort_by_rating(scenes: list[Scene]) -> list[Scene]:
    """Highest rating first, unrated scenes last, otherwise stable."""
    return sorted(scenes, key=lambda s: (s.rating is None, -(s.rating or 0)))


@dataclass
class PendingWrite:
    """An optimistic rating whose Stash write may not be visible yet."""

    rating: int
    issued_at: float
    in_flight: bool = True


class SceneCache:
    """Memory + SQLite cache over the Stash scene listing."""

    def __init__(
        self,
        gateway: SceneGateway,
        repository: CacheEntryRepository | None = None,
        max_age: float = CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._repository = repository
        self.max_age = max_age
        self._clock = clock
        self._memory: dict[CacheBucket, CacheEntry] = {}
        self._active_filter_key: str | None = None
        self._epochs = {CacheBucket.ALL: 0, CacheBucket.FILTERED: 0}
        self._refreshing: set[tuple[CacheBucket, str]] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending: dict[str, PendingWrite] = {}
        self._fetch_ids = itertools.count()
        self._fetches_started: dict[int, float] = {}

    # Public API -------------------------------------------------

    @property
    def is_warm(self) -> bool:
        """True when the all-scenes bucket is in memory."""
        return CacheBucket.ALL in self._memory

    async def get_all(self) -> SceneList:
        """All scenes, highest rating first."""
        entry = self._memory.get(CacheBucket.ALL)
        if entry is not None:
            logger.debug(
                "Memory cache hit (all scenes): %d scenes, age %.0fs",
                len(entry.items),
                entry.age(self._clock()),
            )
            self._revalidate_if_stale(entry, UNFILTERED)
            return self._as_list(entry)

        entry = self._load_persisted(CacheBucket.ALL)
        if entry is not None:
            logger.info(
                "Persistent cache hit (all scenes): %d scenes, age %.0fs",
                len(entry.items),
                entry.age(self._clock()),
            )
            self._memory[CacheBucket.ALL] = entry
            self._revalidate_if_stale(entry, UNFILTERED)
            return self._as_list(entry)

        logger.info("No cached scenes, fetching all scenes from Stash (first load)")
        return self._as_list(await self._fetch(CacheBucket.ALL, UNFILTERED))

    async def get_filtered(self, query: SceneQuery) -> SceneList:
        """Scenes matching ``query``; a cached entry for another filter is a miss."""
        key = query.key
        self._active_filter_key = key

        entry = self._memory.get(CacheBucket.FILTERED)
        if entry is not None and entry.filter_key == key:
            logger.debug(
                "Memory cache hit (filtered): %d scenes, age %.0fs",
                len(entry.items),
                entry.age(self._clock()),
            )
            self._revalidate_if_stale(entry, query)
            return self._as_list(entry)
        if entry is not None:
            del self._memory[CacheBucket.FILTERED]

        entry = self._load_persisted(CacheBucket.FILTERED)
        if entry is not None and entry.filter_key == key:
            logger.info(
                "Persistent cache hit (filtered): %d scenes, age %.0fs",
                len(entry.items),
                entry.age(self._clock()),
            )
            self._memory[CacheBucket.FILTERED] = entry
            self._revalidate_if_stale(entry, query)
            return self._as_list(entry)
        if entry is not None:
            logger.info("Cached filtered scenes belong to another filter, fetching")

        return self._as_list(await self._fetch(CacheBucket.FILTERED, query))

    def invalidate_filtered(self) -> None:
        """Drop the filtered bucket from both tiers."""
        self._epochs[CacheBucket.FILTERED] += 1
        self._memory.pop(CacheBucket.FILTERED, None)
        if self._repository is not None:
            try:
                self._repository.delete(CacheBucket.FILTERED)
            except PERSISTENT_TIER_ERRORS as e:
                logger.warning("Persistent cache delete failed: %s", e)

    def invalidate_all(self) -> None:
        """Drop every bucket from both tiers."""
        for bucket in self._epochs:
            self._epochs[bucket] += 1
        self._memory.clear()
        if self._repository is not None:
            try:
                self._repository.clear()
            except PERSISTENT_TIER_ERRORS as e:
                logger.warning("Persistent cache clear failed: %s", e)
        logger.info("All scene caches cleared")

    def apply_rating_update(self, scene_id: str, new_rating: int) -> None:
        """Reflect a new rating without refetching.

        The scene moves to its new place in the all-scenes order; in the
        filtered bucket it is only patched, order there doesn't matter.
        """
        all_entry = self._memory.get(CacheBucket.ALL)
        if all_entry is not None:
            items = all_entry.items
            index = next((i for i, s in enumerate(items) if s.id == scene_id), None)
            if index is not None:
                scene = items.pop(index)
                scene.rating = new_rating
                position = next(
                    (i for i, s in enumerate(items) if s.rating is None or s.rating < new_rating),
                    len(items),
                )
                items.insert(position, scene)
                self._persist(all_entry)

        filtered_entry = self._memory.get(CacheBucket.FILTERED)
        if filtered_entry is not None:
            for scene in filtered_entry.items:
                if scene.id == scene_id:
                    scene.rating = new_rating
                    self._persist(filtered_entry)
                    break

        logger.debug("Updated scene %s rating to %d in cache", scene_id, new_rating)

    def mark_pending(self, scene_id: str, rating: int) -> None:
        """Record an optimistic rating so refreshes don't overwrite it."""
        self._pending[scene_id] = PendingWrite(rating=rating, issued_at=self._clock())

    def resolve_pending(self, scene_id: str) -> None:
        """The write for ``scene_id`` finished (successfully or not)."""
        pending = self._pending.get(scene_id)
        if pending is not None:
            pending.in_flight = False

    async def drain(self) -> None:
        """Wait for background refreshes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Internals --------------------------------------------------

    def _as_list(self, entry: CacheEntry) -> SceneList:
        return SceneList(scenes=entry.items, count=entry.count)

    def _revalidate_if_stale(self, entry: CacheEntry, query: SceneQuery) -> None:
        if entry.age(self._clock()) < self.max_age:
            return
        flight = (entry.bucket, query.key)
        if flight in self._refreshing:
            return
        logger.info(
            "Cache stale (>%.0fs), refreshing %s scenes in background",
            self.max_age,
            entry.bucket.value,
        )
        self._refreshing.add(flight)
        task = asyncio.create_task(self._background_refresh(entry.bucket, query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_refresh(self, bucket: CacheBucket, query: SceneQuery) -> None:
        old = self._memory.get(bucket)
        old_count = old.count if old is not None else 0
        try:
            entry = await self._fetch(bucket, query)
            if entry.count != old_count:
                logger.info(
                    "Scene count changed (%s): %d -> %d", bucket.value, old_count, entry.count
                )
        except GatewayError as e:
            logger.warning("Background refresh of %s scenes failed: %s", bucket.value, e)
        except Exception as e:
            logger.error(f"Background refresh of {bucket.value} scenes failed: {e}", exc_info=True)
        finally:
            self._refreshing.discard((bucket, query.key))

    async def _fetch(self, bucket: CacheBucket, query: SceneQuery) -> CacheEntry:
        """Fetch from Stash and commit unless the result went stale meanwhile."""
        epoch = self._epochs[bucket]
        fetch_id = next(self._fetch_ids)
        started = self._clock()
        self._fetches_started[fetch_id] = started
        try:
            result = await self._gateway.list_scenes(query, sort="rating")
        finally:
            del self._fetches_started[fetch_id]

        scenes = self._overlay_pending(result.scenes, started)
        entry = CacheEntry(
            bucket=bucket,
            items=sort_by_rating(scenes),
            count=result.count,
            filter_key=query.key if bucket == CacheBucket.FILTERED else None,
            fetched_at=self._clock(),
        )

        if epoch != self._epochs[bucket]:
            logger.info("Cache invalidated during %s fetch, discarding results", bucket.value)
        elif bucket == CacheBucket.FILTERED and query.key != self._active_filter_key:
            logger.info("Filter changed during fetch, discarding results")
        else:
            self._memory[bucket] = entry
            self._persist(entry)
            logger.info("Fetched and cached %d %s scenes", len(entry.items), bucket.value)

        self._prune_pending()
        return entry

    def _overlay_pending(self, scenes: list[Scene], fetch_started: float) -> list[Scene]:
        for scene in scenes:
            pending = self._pending.get(scene.id)
            if pending is not None and (pending.in_flight or pending.issued_at >= fetch_started):
                scene.rating = pending.rating
        return scenes

    def _prune_pending(self) -> None:
        oldest = min(self._fetches_started.values(), default=math.inf)
        self._pending = {
            scene_id: pending
            for scene_id, pending in self._pending.items()
            if pending.in_flight or pending.issued_at >= oldest
        }

    def _load_persisted(self, bucket: CacheBucket) -> CacheEntry | None:
        if self._repository is None:
            return None
        try:
            return self._repository.get(bucket)
        except PERSISTENT_TIER_ERRORS as e:
            logger.warning("Persistent cache read failed, using memory only: %s", e)
            return None

    def _persist(self, entry: CacheEntry) -> None:
        if self._repository is None:
            return
        try:
            self._repository.put(entry)
        except PERSISTENT_TIER_ERRORS as e:
            logger.warning("Persistent cache write failed, using memory only: %s", e)
