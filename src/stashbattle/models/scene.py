"""Scene models."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Scene(BaseModel):
    """A scene as listed by the Stash server.

    Only the fields the battle logic needs are typed. Everything else the
    server returns (paths, files, studio, performers, tags, ...) is kept as
    extra data and handed back to the UI untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    title: str | None = None
    # Stash calls this rating100; None means unrated
    rating: int | None = Field(
        default=None, validation_alias=AliasChoices("rating", "rating100")
    )
    play_count: int = Field(default=0, description="Times the scene has been played")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("play_count", mode="before")
    @classmethod
    def _coerce_play_count(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(value))


class SceneList(BaseModel):
    """Scenes plus the total count reported by the server."""

    scenes: list[Scene]
    count: int
