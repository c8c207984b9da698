"""Battle session engine.

Ties the cache, sampling pool and selector together into turns the UI can
show, applies decisions, and writes ratings back to Stash without waiting
for the write to finish.
"""

import asyncio
import logging
import random
import sqlite3
from collections.abc import Coroutine
from typing import Any

from stashbattle.battle.cache import SceneCache
from stashbattle.battle.errors import NoActivePairError, SkipNotAllowedError, UnknownSceneError
from stashbattle.battle.pool import SamplingPool
from stashbattle.battle.rating import DEFAULT_RATING, score
from stashbattle.battle.selector import SWISS_NEIGHBOR_REACH, Matchup, MatchSelector
from stashbattle.config import Settings, get_settings
from stashbattle.db.repository import CacheEntryRepository, SessionStateRepository
from stashbattle.gateway.filters import UNFILTERED, SceneQuery
from stashbattle.gateway.stash import GatewayError, SceneGateway
from stashbattle.models.rating import RatingOutcome
from stashbattle.models.scene import Scene
from stashbattle.models.session import (
    BattleMode,
    DecisionResult,
    PairRanks,
    RunOutcome,
    RunPhase,
    ScenePair,
    SessionState,
    TurnResult,
    TurnStatus,
)

logger = logging.getLogger(__name__)

SESSION_STORE_ERRORS = (sqlite3.Error, OSError, ValueError)

NO_MATCHES_MESSAGE = "No scenes match your filter criteria."
NOT_ENOUGH_MESSAGE = "Not enough scenes for comparison. You need at least 2 scenes."


class BattleEngine:
    """One user's battle session over a Stash collection."""

    def __init__(
        self,
        gateway: SceneGateway,
        cache: SceneCache,
        pool: SamplingPool | None = None,
        sessions: SessionStateRepository | None = None,
        neighbor_reach: int = SWISS_NEIGHBOR_REACH,
        random_sample_size: int = 100,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self._rng = rng or random.Random()
        self.pool = pool or SamplingPool(self._rng)
        self.selector = MatchSelector(self.pool, neighbor_reach, self._rng)
        self._sessions = sessions
        self.random_sample_size = random_sample_size
        self._query = UNFILTERED
        self._state = self._fresh_state(BattleMode.SWISS)
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls, gateway: SceneGateway, settings: Settings | None = None
    ) -> "BattleEngine":
        """Engine with SQLite-backed cache and session storage."""
        settings = settings or get_settings()
        cache = SceneCache(
            gateway,
            repository=CacheEntryRepository(),
            max_age=settings.cache_max_age_seconds,
        )
        return cls(
            gateway,
            cache,
            sessions=SessionStateRepository(),
            neighbor_reach=settings.swiss_neighbor_reach,
            random_sample_size=settings.random_pair_sample_size,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def query(self) -> SceneQuery:
        return self._query

    # Session lifecycle ------------------------------------------

    def load(self) -> SessionState:
        """Restore the saved session, if there is one."""
        if self._sessions is None:
            return self._state
        try:
            saved = self._sessions.load()
        except SESSION_STORE_ERRORS as e:
            logger.warning("Could not load saved session, starting fresh: %s", e)
            saved = None
        if saved is not None:
            self._state = saved
            self._query = SceneQuery(saved.scene_filter, saved.search_text)
            logger.info("Restored %s session", saved.mode.value)
        return self._state

    async def current_turn(self) -> TurnResult:
        """What to show right now: the saved pair if any, else a new one."""
        state = self._state
        if state.outcome is not None:
            return self._terminal_turn()
        if state.has_pair:
            if not self.cache.is_warm:
                self._spawn(self._prewarm())
            return self._pair_turn()
        return await self.next_turn()

    async def next_turn(self) -> TurnResult:
        """Select and show the next pair."""
        state = self._state
        if state.outcome is not None:
            return self._terminal_turn()

        try:
            scenes = (await self.cache.get_all()).scenes
        except GatewayError as e:
            logger.error("Error loading scenes: %s", e)
            return self._error_turn(f"Error loading scenes: {e}")

        if len(scenes) < 2:
            return await self._random_turn()

        challenger: Scene | None = None
        if self.selector.needs_challenger(state):
            try:
                challenger = await self._draw_challenger(scenes)
                # A forced refetch may have replaced the listing
                scenes = (await self.cache.get_all()).scenes
            except GatewayError as e:
                logger.error("Error loading filtered scenes: %s", e)
                return self._error_turn(f"Error loading scenes: {e}")
            if challenger is None:
                logger.info("No scenes left to sample for this filter")
                state.clear_pair()
                self._save()
                return TurnResult(
                    status=TurnStatus.EXHAUSTED,
                    mode=state.mode,
                    total_count=state.total_count,
                    message=NO_MATCHES_MESSAGE,
                )

        state.total_count = len(scenes)
        matchup = self.selector.select(state, scenes, challenger)
        if matchup.rating_write is not None:
            self._write_rating(*matchup.rating_write)

        if matchup.status != TurnStatus.PAIR:
            state.clear_pair()
            self._save()
            if matchup.status == TurnStatus.ERROR:
                return self._error_turn(NOT_ENOUGH_MESSAGE)
            return self._terminal_turn()

        self._show(matchup)
        return self._pair_turn()

    async def choose(self, winner_id: str) -> DecisionResult:
        """Record that ``winner_id`` beat the other scene on screen.

        Raises:
            NoActivePairError: No pair is on screen
            UnknownSceneError: ``winner_id`` is not part of the pair
        """
        state = self._state
        if not state.has_pair:
            raise NoActivePairError("No pair to decide")
        left, right = state.pair.left, state.pair.right
        assert left is not None and right is not None
        if winner_id == left.id:
            winner, loser, loser_rank = left, right, state.ranks.right
        elif winner_id == right.id:
            winner, loser, loser_rank = right, left, state.ranks.left
        else:
            raise UnknownSceneError(winner_id)

        falling = state.falling_item
        if (
            state.mode == BattleMode.GAUNTLET
            and state.phase == RunPhase.FALLING
            and falling is not None
            and winner.id == falling.id
        ):
            before = falling.rating if falling.rating is not None else DEFAULT_RATING
            rating, _ = self.selector.settle_falling(state, loser, loser_rank)
            loser_rating = loser.rating if loser.rating is not None else DEFAULT_RATING
            outcome = RatingOutcome(
                winner_rating_before=before,
                winner_rating_after=rating,
                loser_rating_before=loser_rating,
                loser_rating_after=loser_rating,
            )
        else:
            context = self.selector.rating_context(state, loser_rank)
            outcome = score(winner, loser, state.mode, context)
            self.selector.record_decision(state, winner, loser, outcome)

        if outcome.winner_delta:
            self._write_rating(winner.id, outcome.winner_rating_after)
        if outcome.loser_delta:
            self._write_rating(loser.id, outcome.loser_rating_after)

        logger.info(
            "%s beat %s (%+d / %+d)",
            winner.id,
            loser.id,
            outcome.winner_delta,
            outcome.loser_delta,
        )
        state.clear_pair()
        self._save()
        return DecisionResult(
            winner_id=winner.id,
            loser_id=loser.id,
            winner_rating_before=outcome.winner_rating_before,
            winner_rating_after=outcome.winner_rating_after,
            loser_rating_before=outcome.loser_rating_before,
            loser_rating_after=outcome.loser_rating_after,
            winner_delta=outcome.winner_delta,
            loser_delta=outcome.loser_delta,
            outcome=state.outcome,
            placement_rank=state.placement_rank,
            placement_rating=state.placement_rating,
        )

    async def skip(self) -> TurnResult:
        """Show another pair without recording a decision.

        Raises:
            SkipNotAllowedError: A gauntlet/champion run has a champion, or
                the run already ended in victory or placement
        """
        state = self._state
        if state.outcome is not None:
            raise SkipNotAllowedError("The run is over; start a new one")
        if state.mode != BattleMode.SWISS:
            if state.phase != RunPhase.NO_CHAMPION:
                raise SkipNotAllowedError("Can't skip while a champion is defending")
            state.reset_run()
        state.clear_pair()
        return await self.next_turn()

    async def set_mode(self, mode: BattleMode) -> TurnResult:
        """Switch modes; the run context starts over."""
        if mode != self._state.mode:
            logger.info("Switching to %s mode", mode.value)
        self._state = self._fresh_state(mode)
        self.pool.reset()
        self._save()
        return await self.next_turn()

    async def set_filter(self, query: SceneQuery) -> TurnResult:
        """Use ``query`` for sampling; a different filter starts a new session."""
        if query.key == self._state.filter_key:
            self._query = query
            return await self.current_turn()

        logger.info("Filter changed, starting a new session")
        self._query = query
        self.cache.invalidate_filtered()
        self.pool.reset()
        self._state = self._fresh_state(self._state.mode)
        self._save()
        return await self.next_turn()

    async def new_run(self) -> TurnResult:
        """Leave a victory/placement screen and start another run."""
        self._state.reset_run()
        self._state.clear_pair()
        self._save()
        return await self.next_turn()

    async def reset(self) -> TurnResult:
        """Forget the session (mode and filter are kept)."""
        logger.info("Resetting battle session")
        self._state = self._fresh_state(self._state.mode)
        self.pool.reset()
        self._save()
        return await self.next_turn()

    async def refresh(self) -> TurnResult:
        """Drop every cached listing and start over from fresh data."""
        self.cache.invalidate_all()
        return await self.reset()

    async def drain(self) -> None:
        """Wait for rating writes and background refreshes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.cache.drain()

    async def aclose(self) -> None:
        await self.drain()

    # Internals --------------------------------------------------

    def _fresh_state(self, mode: BattleMode) -> SessionState:
        return SessionState(
            mode=mode,
            filter_key=self._query.key,
            scene_filter=self._query.scene_filter,
            search_text=self._query.search,
        )

    async def _filtered(self, scenes: list[Scene], refetch: bool = False) -> list[Scene]:
        if self._query.is_filtered:
            if refetch:
                self.cache.invalidate_filtered()
            return (await self.cache.get_filtered(self._query)).scenes
        if refetch:
            self.cache.invalidate_all()
            return (await self.cache.get_all()).scenes
        return scenes

    async def _draw_challenger(self, scenes: list[Scene]) -> Scene | None:
        key = self._query.key
        challenger = self.pool.next(await self._filtered(scenes), key)
        if challenger is None:
            logger.info("Sampling pool exhausted, refetching filtered scenes")
            challenger = self.pool.next(await self._filtered(scenes, refetch=True), key)
        return challenger.model_copy() if challenger is not None else None

    async def _random_turn(self) -> TurnResult:
        """Unranked pair straight from Stash when the listing is too small."""
        try:
            total = await self.gateway.count(self._query)
            if total < 2:
                return self._error_turn(NOT_ENOUGH_MESSAGE)
            sample = await self.gateway.list_scenes(
                self._query, sort="random", limit=min(self.random_sample_size, total)
            )
        except GatewayError as e:
            logger.error("Error loading random scenes: %s", e)
            return self._error_turn(f"Error loading scenes: {e}")
        if len(sample.scenes) < 2:
            return self._error_turn("Not enough scenes returned from query.")

        left, right = self._rng.sample(sample.scenes, 2)
        self._state.total_count = total
        self._show(Matchup(status=TurnStatus.PAIR, left=left, right=right))
        return self._pair_turn()

    def _show(self, matchup: Matchup) -> None:
        state = self._state
        state.pair = ScenePair(
            left=matchup.left.model_copy() if matchup.left else None,
            right=matchup.right.model_copy() if matchup.right else None,
        )
        state.ranks = PairRanks(left=matchup.left_rank, right=matchup.right_rank)
        self._save()

    def _pair_turn(self) -> TurnResult:
        state = self._state
        left, right = state.pair.left, state.pair.right
        left_streak = right_streak = None
        if state.phase == RunPhase.CLIMBING and state.champion is not None:
            if left is not None and left.id == state.champion.id:
                left_streak = state.win_streak
            elif right is not None and right.id == state.champion.id:
                right_streak = state.win_streak
        return TurnResult(
            status=TurnStatus.PAIR,
            mode=state.mode,
            left=left,
            right=right,
            left_rank=state.ranks.left,
            right_rank=state.ranks.right,
            left_streak=left_streak,
            right_streak=right_streak,
            total_count=state.total_count,
            falling=state.phase == RunPhase.FALLING,
        )

    def _terminal_turn(self) -> TurnResult:
        state = self._state
        if state.outcome == RunOutcome.VICTORY:
            return TurnResult(
                status=TurnStatus.VICTORY,
                mode=state.mode,
                left=state.champion,
                left_rank=1,
                left_streak=state.win_streak,
                total_count=state.total_count,
            )
        return TurnResult(
            status=TurnStatus.PLACEMENT,
            mode=state.mode,
            left=state.falling_item,
            left_rank=state.placement_rank,
            total_count=state.total_count,
            placement_rank=state.placement_rank,
            placement_rating=state.placement_rating,
        )

    def _error_turn(self, message: str) -> TurnResult:
        return TurnResult(
            status=TurnStatus.ERROR,
            mode=self._state.mode,
            total_count=self._state.total_count,
            message=message,
        )

    def _write_rating(self, scene_id: str, rating: int) -> None:
        """Update the cache now and Stash in the background."""
        self.cache.apply_rating_update(scene_id, rating)
        self.cache.mark_pending(scene_id, rating)
        self._spawn(self._send_rating(scene_id, rating))

    async def _send_rating(self, scene_id: str, rating: int) -> None:
        try:
            await self.gateway.set_rating(scene_id, rating)
        except GatewayError as e:
            logger.warning("Failed to update scene %s rating: %s", scene_id, e)
        finally:
            self.cache.resolve_pending(scene_id)

    async def _prewarm(self) -> None:
        try:
            await self.cache.get_all()
        except GatewayError as e:
            logger.warning("Cache pre-warm failed: %s", e)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _save(self) -> None:
        if self._sessions is None:
            return
        try:
            self._sessions.save(self._state)
        except SESSION_STORE_ERRORS as e:
            logger.warning("Could not save battle session: %s", e)
