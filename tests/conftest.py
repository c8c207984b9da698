"""pytest configuration and shared fixtures."""

import asyncio
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from unittest.mock import patch

import pytest

from stashbattle.gateway.filters import SceneQuery
from stashbattle.gateway.stash import UNLIMITED, GatewayError
from stashbattle.models.scene import Scene, SceneList


@pytest.fixture(autouse=True)
def use_test_database() -> Iterator[sqlite3.Connection]:
    """Use an isolated in-memory database for all tests.

    This fixture runs automatically for all tests to ensure they
    don't affect the real database.
    """
    from stashbattle.db.migrate import SCHEMA

    test_conn = sqlite3.connect(":memory:", check_same_thread=False)
    test_conn.row_factory = sqlite3.Row
    test_conn.executescript(SCHEMA)
    test_conn.commit()

    @contextmanager
    def mock_get_connection() -> Iterator[sqlite3.Connection]:
        """Return the test connection as a context manager."""
        yield test_conn

    # Patch in all modules that import get_connection
    with (
        patch("stashbattle.db.connection.get_connection", mock_get_connection),
        patch("stashbattle.db.repository.get_connection", mock_get_connection),
        patch("stashbattle.db.migrate.get_connection", mock_get_connection),
    ):
        yield test_conn

    test_conn.close()


def make_scene(
    scene_id: str | int, rating: int | None = None, play_count: int = 0, **extra: object
) -> Scene:
    """Build a scene the way the gateway would return it."""
    return Scene(
        id=str(scene_id), title=f"Scene {scene_id}", rating=rating, play_count=play_count, **extra
    )


def make_collection(*ratings: int | None) -> list[Scene]:
    """Scenes with ids "1", "2", ... and the given ratings."""
    return [make_scene(i, rating) for i, rating in enumerate(ratings, start=1)]


class FakeGateway:
    """In-memory stand-in for the Stash server.

    Free-text search matches titles; a ``scene_filter`` of
    ``{"ids": [...]}`` restricts the result to those ids.
    """

    def __init__(self, scenes: list[Scene]) -> None:
        self.scenes = {scene.id: scene.model_copy() for scene in scenes}
        self.list_calls: list[tuple[str, str]] = []
        self.rating_writes: list[tuple[str, int]] = []
        self.fail_reads = False
        self.fail_writes = False
        # When set, list_scenes waits on it before answering
        self.gate: asyncio.Event | None = None

    def matching(self, query: SceneQuery) -> list[Scene]:
        scenes = list(self.scenes.values())
        if query.search:
            scenes = [s for s in scenes if query.search.lower() in (s.title or "").lower()]
        if query.scene_filter and "ids" in query.scene_filter:
            wanted = set(query.scene_filter["ids"])
            scenes = [s for s in scenes if s.id in wanted]
        return scenes

    async def count(self, query: SceneQuery) -> int:
        if self.fail_reads:
            raise GatewayError("Stash is down")
        return len(self.matching(query))

    async def list_scenes(
        self, query: SceneQuery, sort: str = "rating", limit: int = UNLIMITED
    ) -> SceneList:
        self.list_calls.append((query.key, sort))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_reads:
            raise GatewayError("Stash is down")
        scenes = [s.model_copy() for s in self.matching(query)]
        if sort == "rating":
            scenes.sort(key=lambda s: (s.rating is None, -(s.rating or 0)))
        total = len(scenes)
        if limit != UNLIMITED:
            scenes = scenes[:limit]
        return SceneList(scenes=scenes, count=total)

    async def set_rating(self, scene_id: str, rating: int) -> Scene:
        if self.fail_writes:
            raise GatewayError("write rejected")
        self.rating_writes.append((scene_id, rating))
        scene = self.scenes[scene_id]
        scene.rating = rating
        return scene.model_copy()


@pytest.fixture
def gateway() -> FakeGateway:
    """Ten scenes rated 95, 90, ..., 50."""
    return FakeGateway(make_collection(*range(95, 45, -5)))
