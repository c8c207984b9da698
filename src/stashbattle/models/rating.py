"""Rating update models."""

from pydantic import BaseModel


class RatingContext(BaseModel):
    """What the rating engine needs to know about the run a decision belongs to."""

    # Scene whose rating moves in gauntlet/champion modes (champion or falling scene)
    active_id: str | None = None
    # Loser's rank in the full collection when the pair was shown
    loser_rank: int | None = None


class RatingOutcome(BaseModel):
    """New ratings for both sides of a decision."""

    winner_rating_before: int
    winner_rating_after: int
    loser_rating_before: int
    loser_rating_after: int

    @property
    def winner_delta(self) -> int:
        return self.winner_rating_after - self.winner_rating_before

    @property
    def loser_delta(self) -> int:
        return self.loser_rating_after - self.loser_rating_before
