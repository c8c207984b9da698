"""Tests for opponent selection helpers."""

import random

from conftest import make_collection, make_scene
from stashbattle.battle.pool import SamplingPool
from stashbattle.battle.selector import MatchSelector, lowest_rated_opponent, swiss_opponent
from stashbattle.models.session import BattleMode, SessionState, TurnStatus


class TestLowestRatedOpponent:
    def test_unrated_scenes_are_passed_over(self) -> None:
        scenes = make_collection(60, 50, None)
        opponent = lowest_rated_opponent(scenes, "1")
        assert opponent is not None
        assert opponent.id == "2"

    def test_falls_back_when_nothing_is_rated(self) -> None:
        scenes = make_collection(None, None, None)
        opponent = lowest_rated_opponent(scenes, "1")
        assert opponent is not None
        assert opponent.id in {"2", "3"}

    def test_no_other_scene(self) -> None:
        assert lowest_rated_opponent(make_collection(70), "1") is None

    def test_challenger_gets_rated_opponent(self) -> None:
        """A gauntlet run without a champion opens against the lowest rated scene."""
        scenes = make_collection(60, 50, None)
        state = SessionState(mode=BattleMode.GAUNTLET)
        selector = MatchSelector(SamplingPool(random.Random(1)))

        matchup = selector.select(state, scenes, challenger=scenes[0])

        assert matchup.status == TurnStatus.PAIR
        assert matchup.right is not None
        assert matchup.right.id == "2"
        assert (matchup.left_rank, matchup.right_rank) == (1, 2)


class TestSwissOpponent:
    def test_stays_within_reach(self) -> None:
        scenes = make_collection(*range(95, 45, -5))
        rng = random.Random(5)
        for _ in range(20):
            opponent = swiss_opponent(scenes, scenes[0], reach=2, rng=rng)
            assert opponent is not None
            assert opponent.id in {"2", "3"}

    def test_empty_window_uses_any_other_scene(self) -> None:
        scenes = make_collection(80, 70, 60)
        outsider = make_scene("99", 65)
        rng = random.Random(3)
        seen = {swiss_opponent(scenes, outsider, rng=rng).id for _ in range(200)}
        assert seen == {"1", "2", "3"}

    def test_zero_reach_uses_any_other_scene(self) -> None:
        scenes = make_collection(80, 70, 60)
        opponent = swiss_opponent(scenes, scenes[1], reach=0, rng=random.Random(8))
        assert opponent is not None
        assert opponent.id in {"1", "3"}

    def test_alone(self) -> None:
        scenes = make_collection(80)
        assert swiss_opponent(scenes, scenes[0]) is None
