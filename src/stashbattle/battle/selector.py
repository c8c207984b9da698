"""Pair selection and run bookkeeping for the three battle modes.

Swiss pairs a scene from the filtered pool with a similarly ranked opponent.
Gauntlet sends a challenger up the rankings until it loses, then lets the
dethroned champion fall until it wins again, which fixes its place. Champion
is gauntlet without the fall: whoever wins stays on.

Rank is always the 1-based position in the full collection, highest rating
first.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from stashbattle.battle.pool import SamplingPool
from stashbattle.battle.rating import DEFAULT_RATING, MAX_RATING, MIN_RATING
from stashbattle.models.rating import RatingContext, RatingOutcome
from stashbattle.models.scene import Scene
from stashbattle.models.session import (
    BattleMode,
    RunOutcome,
    RunPhase,
    SessionState,
    TurnStatus,
)

logger = logging.getLogger(__name__)

# Rank positions above and below the left scene searched for a Swiss opponent
SWISS_NEIGHBOR_REACH = 5


@dataclass
class Matchup:
    """A selected pair, or a terminal result for a run."""

    status: TurnStatus
    left: Scene | None = None
    right: Scene | None = None
    left_rank: int | None = None
    right_rank: int | None = None
    # Rating the engine must write for a placement found during selection
    rating_write: tuple[str, int] | None = None


def index_of(scenes: Sequence[Scene], scene_id: str) -> int | None:
    for index, scene in enumerate(scenes):
        if scene.id == scene_id:
            return index
    return None


def rank_of(scenes: Sequence[Scene], scene_id: str) -> int | None:
    """1-based rank of a scene in the rating-sorted collection."""
    index = index_of(scenes, scene_id)
    return index + 1 if index is not None else None


def lowest_rated_opponent(scenes: Sequence[Scene], exclude_id: str) -> Scene | None:
    """Lowest rated scene other than ``exclude_id``.

    Unrated scenes don't count as rated 50 here; they are only used when
    nothing in the collection has a rating.
    """
    others = [s for s in scenes if s.id != exclude_id]
    rated = [s for s in others if s.rating is not None]
    if rated:
        return min(rated, key=lambda s: s.rating or 0)
    return others[-1] if others else None


def swiss_opponent(
    scenes: Sequence[Scene],
    scene: Scene,
    reach: int = SWISS_NEIGHBOR_REACH,
    rng: random.Random | None = None,
) -> Scene | None:
    """Random opponent within ``reach`` ranks of ``scene``."""
    rng = rng or random.Random()
    others = [s for s in scenes if s.id != scene.id]
    if not others:
        return None
    index = index_of(scenes, scene.id)
    window: list[Scene] = []
    if index is not None:
        lo = max(0, index - reach)
        window = [s for s in scenes[lo : index + reach + 1] if s.id != scene.id]
    return rng.choice(window or others)


def climbing_opponent(
    scenes: Sequence[Scene], champion: Scene, defeated_ids: Sequence[str]
) -> Scene | None:
    """Closest undefeated scene ranked above the champion (or rated at least as high)."""
    champion_index = index_of(scenes, champion.id)
    position = champion_index if champion_index is not None else -1
    champion_rating = champion.rating or 0
    defeated = set(defeated_ids)
    remaining = [
        s
        for i, s in enumerate(scenes)
        if s.id != champion.id
        and s.id not in defeated
        and (i < position or (s.rating or 0) >= champion_rating)
    ]
    return remaining[-1] if remaining else None


def falling_opponent(
    scenes: Sequence[Scene], falling: Scene, tested_ids: Sequence[str]
) -> Scene | None:
    """First untested scene ranked below the falling scene."""
    falling_index = index_of(scenes, falling.id)
    position = falling_index if falling_index is not None else -1
    tested = set(tested_ids)
    for i, s in enumerate(scenes):
        if i > position and s.id != falling.id and s.id not in tested:
            return s
    return None


class MatchSelector:
    """Chooses pairs and advances the gauntlet/champion state machine.

    The selector mutates the ``SessionState`` it is given; persisting it is
    the caller's job.
    """

    def __init__(
        self,
        pool: SamplingPool,
        neighbor_reach: int = SWISS_NEIGHBOR_REACH,
        rng: random.Random | None = None,
    ) -> None:
        self.pool = pool
        self.neighbor_reach = neighbor_reach
        self._rng = rng or random.Random()

    def needs_challenger(self, state: SessionState) -> bool:
        """Whether the next pair starts with a scene drawn from the pool."""
        if state.outcome is not None:
            return False
        return state.mode == BattleMode.SWISS or state.phase == RunPhase.NO_CHAMPION

    def select(
        self, state: SessionState, scenes: Sequence[Scene], challenger: Scene | None = None
    ) -> Matchup:
        """Pick the next pair for the session's mode and phase.

        Args:
            state: Session to select for (updated on victory/placement)
            scenes: Full collection, highest rating first
            challenger: Scene drawn from the pool, when ``needs_challenger``

        Returns:
            Matchup with the pair and ranks, or a terminal status
        """
        if state.mode == BattleMode.SWISS:
            return self._select_swiss(scenes, self._require(challenger))

        phase = state.phase
        if phase == RunPhase.FALLING:
            return self._select_falling(state, scenes)
        if phase == RunPhase.CLIMBING:
            return self._select_climbing(state, scenes)
        return self._select_no_champion(state, scenes, self._require(challenger))

    def rating_context(self, state: SessionState, loser_rank: int | None) -> RatingContext:
        """Which scene's rating moves for a decision in the current phase."""
        active_id: str | None = None
        phase = state.phase
        if phase == RunPhase.FALLING and state.falling_item is not None:
            active_id = state.falling_item.id
        elif phase == RunPhase.CLIMBING and state.champion is not None:
            active_id = state.champion.id
        return RatingContext(active_id=active_id, loser_rank=loser_rank)

    def record_decision(
        self, state: SessionState, winner: Scene, loser: Scene, outcome: RatingOutcome
    ) -> None:
        """Advance the session after ``winner`` beat ``loser``."""
        if state.mode == BattleMode.SWISS:
            self.pool.remove(winner.id)
            self.pool.remove(loser.id)
            return

        phase = state.phase
        new_winner = winner.model_copy(update={"rating": outcome.winner_rating_after})

        if phase == RunPhase.FALLING:
            # Falling scene lost again; keep going down
            state.defeated_ids.append(winner.id)
            if state.falling_item is not None:
                state.falling_item = state.falling_item.model_copy(
                    update={"rating": outcome.loser_rating_after}
                )
            return

        if phase == RunPhase.CLIMBING and state.champion is not None:
            if winner.id == state.champion.id:
                state.defeated_ids.append(loser.id)
                state.win_streak += 1
                state.champion = new_winner
                return
            if state.mode == BattleMode.GAUNTLET:
                logger.info("Champion %s dethroned, finding its floor", loser.id)
                state.falling = True
                state.falling_item = loser.model_copy(
                    update={"rating": outcome.loser_rating_after}
                )
                state.defeated_ids = [winner.id]
            else:
                state.defeated_ids = [loser.id]
            state.champion = new_winner
            state.win_streak = 1
            return

        state.champion = new_winner
        state.win_streak = 1
        state.defeated_ids = [loser.id]

    def settle_falling(
        self, state: SessionState, opponent: Scene, opponent_rank: int | None
    ) -> tuple[int, int]:
        """The falling scene beat ``opponent``: place it just above it.

        Returns:
            (final rating, final rank)
        """
        opponent_rating = opponent.rating if opponent.rating is not None else DEFAULT_RATING
        rating = min(MAX_RATING, opponent_rating + 1)
        rank = max(1, (opponent_rank or 1) - 1)
        self._place(state, rating, rank)
        return rating, rank

    # Internals --------------------------------------------------

    def _require(self, challenger: Scene | None) -> Scene:
        if challenger is None:
            raise ValueError("A challenger from the sampling pool is required")
        return challenger

    def _select_swiss(self, scenes: Sequence[Scene], left: Scene) -> Matchup:
        right = swiss_opponent(scenes, left, self.neighbor_reach, self._rng)
        if right is None:
            return Matchup(status=TurnStatus.ERROR)
        return Matchup(
            status=TurnStatus.PAIR,
            left=left,
            right=right,
            left_rank=rank_of(scenes, left.id),
            right_rank=rank_of(scenes, right.id),
        )

    def _select_no_champion(
        self, state: SessionState, scenes: Sequence[Scene], challenger: Scene
    ) -> Matchup:
        state.reset_run()
        opponent = lowest_rated_opponent(scenes, challenger.id)
        if opponent is None:
            return Matchup(status=TurnStatus.ERROR)
        return Matchup(
            status=TurnStatus.PAIR,
            left=challenger,
            right=opponent,
            left_rank=rank_of(scenes, challenger.id) or len(scenes),
            right_rank=rank_of(scenes, opponent.id),
        )

    def _select_climbing(self, state: SessionState, scenes: Sequence[Scene]) -> Matchup:
        assert state.champion is not None
        champion = self._current(scenes, state.champion)
        opponent = climbing_opponent(scenes, champion, state.defeated_ids)
        if opponent is None:
            logger.info("Champion %s reached the top", champion.id)
            state.champion = champion
            state.outcome = RunOutcome.VICTORY
            return Matchup(status=TurnStatus.VICTORY, left=champion, left_rank=1)
        return Matchup(
            status=TurnStatus.PAIR,
            left=champion,
            right=opponent,
            left_rank=rank_of(scenes, champion.id) or 1,
            right_rank=rank_of(scenes, opponent.id),
        )

    def _select_falling(self, state: SessionState, scenes: Sequence[Scene]) -> Matchup:
        assert state.falling_item is not None
        falling = self._current(scenes, state.falling_item)
        opponent = falling_opponent(scenes, falling, state.defeated_ids)
        if opponent is None:
            # Nothing left below: it is the lowest scene
            rank = len(scenes)
            self._place(state, MIN_RATING, rank, falling)
            return Matchup(
                status=TurnStatus.PLACEMENT,
                left=state.falling_item,
                left_rank=rank,
                rating_write=(falling.id, MIN_RATING),
            )
        return Matchup(
            status=TurnStatus.PAIR,
            left=falling,
            right=opponent,
            left_rank=rank_of(scenes, falling.id),
            right_rank=rank_of(scenes, opponent.id),
        )

    def _place(
        self, state: SessionState, rating: int, rank: int, scene: Scene | None = None
    ) -> None:
        placed = scene or state.falling_item
        assert placed is not None
        logger.info("Scene %s placed at rank %d with rating %d", placed.id, rank, rating)
        state.reset_run()
        state.falling_item = placed.model_copy(update={"rating": rating})
        state.outcome = RunOutcome.PLACEMENT
        state.placement_rank = rank
        state.placement_rating = rating

    def _current(self, scenes: Sequence[Scene], scene: Scene) -> Scene:
        """The collection's copy of ``scene`` (it carries the latest rating)."""
        index = index_of(scenes, scene.id)
        if index is None:
            return scene
        return scenes[index].model_copy()
