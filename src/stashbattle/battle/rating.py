"""Rating calculation for battle decisions.

Ratings live on Stash's 1-100 scale, so the logistic curve uses a scale of
40 instead of chess's 400. K depends on how often a scene has been played:
new scenes should find their level fast, established ones should be stable.
"""

import math

from stashbattle.models.rating import RatingContext, RatingOutcome
from stashbattle.models.scene import Scene
from stashbattle.models.session import BattleMode

DEFAULT_RATING = 50
MIN_RATING = 1
MAX_RATING = 100

# Logistic scale for the 1-100 rating range
RATING_SCALE = 40.0

# (play count upper bound, K) pairs, checked in order
K_FACTOR_TIERS = ((3, 12), (8, 8), (15, 6))
ESTABLISHED_K_FACTOR = 4


def clamp_rating(rating: int) -> int:
    return max(MIN_RATING, min(MAX_RATING, rating))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def k_factor(play_count: int) -> int:
    """K-factor for a scene with the given play count."""
    for bound, k in K_FACTOR_TIERS:
        if play_count < bound:
            return k
    return ESTABLISHED_K_FACTOR


def expected_score(rating_a: float, rating_b: float) -> float:
    """Expected score for A against B.

    Args:
        rating_a: Current rating of scene A
        rating_b: Current rating of scene B

    Returns:
        Expected score for A (0.0 to 1.0)
    """
    return 1.0 / (1.0 + math.pow(10.0, (rating_b - rating_a) / RATING_SCALE))


def score(
    winner: Scene,
    loser: Scene,
    mode: BattleMode,
    context: RatingContext | None = None,
) -> RatingOutcome:
    """Calculate new ratings after ``winner`` beat ``loser``.

    Swiss updates both sides. Gauntlet and champion only move the active
    scene (the champion, or the falling scene); the other side is a fixed
    benchmark, except that a rank #1 benchmark that loses drops exactly one
    point so the top spot can't become unbeatable.

    Every non-zero change is at least one point and results are clamped to
    1-100.

    Args:
        winner: Scene the user picked
        loser: The other scene
        mode: Battle mode the decision was made in
        context: Active scene and loser rank (gauntlet/champion only)

    Returns:
        RatingOutcome with before/after ratings for both sides
    """
    context = context or RatingContext()
    winner_rating = winner.rating if winner.rating is not None else DEFAULT_RATING
    loser_rating = loser.rating if loser.rating is not None else DEFAULT_RATING

    expected_winner = expected_score(winner_rating, loser_rating)
    winner_gain = max(1, round_half_up(k_factor(winner.play_count) * (1 - expected_winner)))
    loser_loss = max(1, round_half_up(k_factor(loser.play_count) * expected_winner))

    if mode != BattleMode.SWISS:
        winner_is_active = context.active_id is not None and winner.id == context.active_id
        loser_is_active = context.active_id is not None and loser.id == context.active_id
        if not winner_is_active:
            winner_gain = 0
        if not loser_is_active:
            loser_loss = 1 if context.loser_rank == 1 else 0

    return RatingOutcome(
        winner_rating_before=winner_rating,
        winner_rating_after=clamp_rating(winner_rating + winner_gain),
        loser_rating_before=loser_rating,
        loser_rating_after=clamp_rating(loser_rating - loser_loss),
    )
