"""No-repeat sampling over the filtered scene set.

Scenes are served from a shuffled order so every scene in the filter comes
up once per cycle. Scenes that were already judged are tracked separately so
a background cache refresh can't bring them back.
"""

import logging
import random
from collections.abc import Sequence

from stashbattle.models.scene import Scene

logger = logging.getLogger(__name__)


def shuffled(items: Sequence[Scene], rng: random.Random | None = None) -> list[Scene]:
    """Shuffle into a new list."""
    rng = rng or random.Random()
    result = list(items)
    rng.shuffle(result)
    return result


class SamplingPool:
    """Shuffled cursor over the current filtered scenes."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self.order: list[Scene] = []
        self.cursor = 0
        self.filter_key: str | None = None
        self.removed_ids: set[str] = set()
        self.last_served_id: str | None = None
        self._shuffled = False

    def reset(self) -> None:
        """Forget the current cycle, removals and filter."""
        self.order = []
        self.cursor = 0
        self.filter_key = None
        self.removed_ids = set()
        self.last_served_id = None
        self._shuffled = False

    def next(self, filtered_items: Sequence[Scene], filter_key: str) -> Scene | None:
        """Serve the next scene, or None when every scene has been removed.

        None is the pool-exhausted signal: the caller should force a fresh
        fetch of the filtered set and try once more.
        """
        key_changed = filter_key != self.filter_key
        if key_changed:
            if self.filter_key is not None:
                logger.info("Filter changed, starting a fresh sampling cycle")
            self.removed_ids = set()
            self.order = []
            self.cursor = 0
            self.last_served_id = None
            self._shuffled = False
            self.filter_key = filter_key

        available = [scene for scene in filtered_items if scene.id not in self.removed_ids]
        if not available:
            return None

        if not self._shuffled:
            self.order = shuffled(available, self._rng)
            self.cursor = 0
            self._shuffled = True
            logger.debug("Shuffled %d scenes", len(self.order))

        # Skip entries a refresh dropped from the filtered set
        available_ids = {scene.id for scene in available}
        while self.cursor < len(self.order) and self.order[self.cursor].id not in available_ids:
            del self.order[self.cursor]

        if self.cursor >= len(self.order):
            self._reshuffle(available)

        # Serve the live copy so ratings reflect the latest refresh
        live = {scene.id: scene for scene in available}
        scene = live[self.order[self.cursor].id]
        self.cursor += 1
        self.last_served_id = scene.id
        logger.debug("Scene %d/%d from shuffled pool", self.cursor, len(self.order))
        return scene

    def _reshuffle(self, available: list[Scene]) -> None:
        """Start a new cycle, avoiding an immediate repeat of the last scene."""
        self.order = shuffled(available, self._rng)
        self.cursor = 0
        if len(self.order) > 1 and self.order[0].id == self.last_served_id:
            swap = self._rng.randint(1, len(self.order) - 1)
            self.order[0], self.order[swap] = self.order[swap], self.order[0]
        logger.debug("Reshuffled %d scenes (completed full cycle)", len(self.order))

    def remove(self, scene_id: str) -> None:
        """Exclude a judged scene for the rest of this filter's session."""
        self.removed_ids.add(scene_id)
        for index, scene in enumerate(self.order):
            if scene.id == scene_id:
                del self.order[index]
                if index < self.cursor:
                    self.cursor -= 1
                break

    @property
    def remaining(self) -> int:
        """Scenes left in the current cycle."""
        return len(self.order) - self.cursor
