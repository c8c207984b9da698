"""Tests for Pydantic models."""

from hypothesis import given
from hypothesis import strategies as st

from conftest import make_scene
from stashbattle.models.cache import CacheBucket, CacheEntry
from stashbattle.models.scene import Scene
from stashbattle.models.session import RunPhase, SessionState


class TestScene:
    """Tests for Scene model."""

    def test_from_stash_payload(self) -> None:
        scene = Scene.model_validate(
            {"id": 42, "title": "T", "rating100": 73, "play_count": None, "date": "2024-01-01"}
        )
        assert scene.id == "42"
        assert scene.rating == 73
        assert scene.play_count == 0
        assert scene.model_dump()["date"] == "2024-01-01"

    def test_serialized_scene_reloads(self) -> None:
        scene = make_scene(7, 61, play_count=3, studio={"name": "S"})
        reloaded = Scene.model_validate_json(scene.model_dump_json())
        assert reloaded == scene

    def test_unrated(self) -> None:
        assert Scene(id="1").rating is None


class TestCacheEntry:
    @given(fetched_at=st.floats(min_value=0, max_value=1e9), elapsed=st.floats(-1e3, 1e6))
    def test_age_never_negative(self, fetched_at: float, elapsed: float) -> None:
        entry = CacheEntry(bucket=CacheBucket.ALL, fetched_at=fetched_at)
        assert entry.age(fetched_at + elapsed) >= 0


class TestSessionState:
    """Exactly one run phase holds at a time."""

    def test_defaults(self) -> None:
        state = SessionState()
        assert state.phase == RunPhase.NO_CHAMPION
        assert not state.has_pair

    def test_phases(self) -> None:
        state = SessionState(champion=make_scene(1, 80))
        assert state.phase == RunPhase.CLIMBING
        state.falling = True
        state.falling_item = make_scene(2, 70)
        assert state.phase == RunPhase.FALLING

    def test_reset_run(self) -> None:
        state = SessionState(
            champion=make_scene(1, 80),
            win_streak=3,
            defeated_ids=["2", "3"],
            falling=True,
            falling_item=make_scene(4, 60),
        )
        state.reset_run()
        assert state.phase == RunPhase.NO_CHAMPION
        assert state.defeated_ids == []
        assert state.win_streak == 0

    def test_json_round_trip(self) -> None:
        state = SessionState(champion=make_scene(1, 80), defeated_ids=["2"], filter_key="{}")
        assert SessionState.model_validate_json(state.model_dump_json()) == state
