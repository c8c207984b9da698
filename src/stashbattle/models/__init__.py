"""Pydantic models for Stash Battle."""

from stashbattle.models.cache import CacheBucket, CacheEntry
from stashbattle.models.rating import RatingContext, RatingOutcome
from stashbattle.models.scene import Scene, SceneList
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

__all__ = [
    "BattleMode",
    "CacheBucket",
    "CacheEntry",
    "DecisionResult",
    "PairRanks",
    "RatingContext",
    "RatingOutcome",
    "RunOutcome",
    "RunPhase",
    "Scene",
    "SceneList",
    "ScenePair",
    "SessionState",
    "TurnResult",
    "TurnStatus",
]
