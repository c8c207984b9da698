"""Battle session models.

The session is the only battle state that has to survive a reload: the pair
on screen, the mode, and the gauntlet/champion run context.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from stashbattle.models.scene import Scene


class BattleMode(str, Enum):
    """How pairs are chosen and ratings updated."""

    SWISS = "swiss"
    GAUNTLET = "gauntlet"
    CHAMPION = "champion"


class RunPhase(str, Enum):
    """Where a gauntlet/champion run currently is."""

    NO_CHAMPION = "no_champion"
    CLIMBING = "climbing"
    FALLING = "falling"  # gauntlet only


class RunOutcome(str, Enum):
    """Terminal display states of a run."""

    VICTORY = "victory"
    PLACEMENT = "placement"


class TurnStatus(str, Enum):
    """Status of a turn handed to the UI."""

    PAIR = "pair"
    VICTORY = "victory"
    PLACEMENT = "placement"
    EXHAUSTED = "exhausted"
    ERROR = "error"


class ScenePair(BaseModel):
    """The two scenes on screen."""

    left: Scene | None = None
    right: Scene | None = None


class PairRanks(BaseModel):
    """1-based ranks of the shown scenes in the full collection."""

    left: int | None = None
    right: int | None = None


class SessionState(BaseModel):
    """Serializable snapshot of the battle session."""

    pair: ScenePair = Field(default_factory=ScenePair)
    ranks: PairRanks = Field(default_factory=PairRanks)
    mode: BattleMode = BattleMode.SWISS
    champion: Scene | None = None
    win_streak: int = 0
    defeated_ids: list[str] = Field(default_factory=list)
    falling: bool = False
    falling_item: Scene | None = None
    total_count: int = 0
    filter_key: str | None = None
    # Filter the session was built for, so a restart can rebuild it
    scene_filter: dict[str, Any] | None = None
    search_text: str | None = None
    outcome: RunOutcome | None = None
    placement_rank: int | None = None
    placement_rating: int | None = None

    @property
    def phase(self) -> RunPhase:
        if self.falling and self.falling_item is not None:
            return RunPhase.FALLING
        if self.champion is not None:
            return RunPhase.CLIMBING
        return RunPhase.NO_CHAMPION

    @property
    def has_pair(self) -> bool:
        return self.pair.left is not None and self.pair.right is not None

    def clear_pair(self) -> None:
        self.pair = ScenePair()
        self.ranks = PairRanks()

    def reset_run(self) -> None:
        """Drop the gauntlet/champion run context (back to no champion)."""
        self.champion = None
        self.win_streak = 0
        self.defeated_ids = []
        self.falling = False
        self.falling_item = None
        self.outcome = None
        self.placement_rank = None
        self.placement_rating = None


class TurnResult(BaseModel):
    """What the UI gets for one turn."""

    status: TurnStatus
    mode: BattleMode
    left: Scene | None = None
    right: Scene | None = None
    left_rank: int | None = None
    right_rank: int | None = None
    left_streak: int | None = None
    right_streak: int | None = None
    total_count: int = 0
    falling: bool = False
    placement_rank: int | None = None
    placement_rating: int | None = None
    message: str | None = None


class DecisionResult(BaseModel):
    """Rating changes after the user picked a winner."""

    winner_id: str
    loser_id: str
    winner_rating_before: int
    winner_rating_after: int
    loser_rating_before: int
    loser_rating_after: int
    winner_delta: int
    loser_delta: int
    outcome: RunOutcome | None = None
    placement_rank: int | None = None
    placement_rating: int | None = None
