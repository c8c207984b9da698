"""Errors raised by the battle engine for bad user actions."""


class BattleError(Exception):
    """Base class for battle errors."""


class NoActivePairError(BattleError):
    """A decision or skip was made while no pair is on screen."""


class UnknownSceneError(BattleError):
    """The chosen winner is not part of the current pair."""

    def __init__(self, scene_id: str) -> None:
        super().__init__(f"Scene {scene_id} is not in the current pair")
        self.scene_id = scene_id


class SkipNotAllowedError(BattleError):
    """Skipping is not possible while a champion is defending."""
