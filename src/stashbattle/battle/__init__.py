"""Battle core: rating, sampling, caching and pair selection."""

from stashbattle.battle.cache import SceneCache
from stashbattle.battle.engine import BattleEngine
from stashbattle.battle.errors import (
    BattleError,
    NoActivePairError,
    SkipNotAllowedError,
    UnknownSceneError,
)
from stashbattle.battle.pool import SamplingPool
from stashbattle.battle.rating import score
from stashbattle.battle.selector import MatchSelector

__all__ = [
    "BattleEngine",
    "BattleError",
    "MatchSelector",
    "NoActivePairError",
    "SamplingPool",
    "SceneCache",
    "SkipNotAllowedError",
    "UnknownSceneError",
    "score",
]
