"""Stash GraphQL gateway.

The Stash server is the source of truth for scenes and their ratings, and
``set_rating`` is the only durable write the battle makes.
"""

import logging
from typing import Any, Protocol

import httpx

from stashbattle.config import Settings, get_settings
from stashbattle.gateway.filters import SceneQuery
from stashbattle.models.scene import Scene, SceneList

logger = logging.getLogger(__name__)

SCENE_FRAGMENT = """
    id
    title
    date
    rating100
    play_count
    paths {
      screenshot
      preview
    }
    files {
      duration
      path
    }
    studio {
      name
    }
    performers {
      name
    }
    tags {
      name
    }
"""

FIND_SCENES_QUERY = f"""
query FindScenes($filter: FindFilterType, $scene_filter: SceneFilterType) {{
  findScenes(filter: $filter, scene_filter: $scene_filter) {{
    count
    scenes {{
      {SCENE_FRAGMENT}
    }}
  }}
}}
"""

COUNT_SCENES_QUERY = """
query FindScenesCount($filter: FindFilterType, $scene_filter: SceneFilterType) {
  findScenes(filter: $filter, scene_filter: $scene_filter) {
    count
  }
}
"""

SCENE_UPDATE_MUTATION = """
mutation SceneUpdate($input: SceneUpdateInput!) {
  sceneUpdate(input: $input) {
    id
    rating100
  }
}
"""

# per_page value Stash treats as "no limit"
UNLIMITED = -1


class GatewayError(Exception):
    """Error talking to the Stash server."""


class SceneGateway(Protocol):
    """What the battle core needs from the remote collection."""

    async def count(self, query: SceneQuery) -> int: ...

    async def list_scenes(
        self, query: SceneQuery, sort: str = "rating", limit: int = UNLIMITED
    ) -> SceneList: ...

    async def set_rating(self, scene_id: str, rating: int) -> Scene: ...


class StashGateway:
    """SceneGateway backed by the Stash GraphQL API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/graphql"
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["ApiKey"] = api_key
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "StashGateway":
        settings = settings or get_settings()
        return cls(
            settings.stash_url,
            api_key=settings.stash_api_key,
            timeout=settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL operation and return its ``data`` object.

        Raises:
            GatewayError: On transport failures or GraphQL errors
        """
        try:
            response = await self._client.post(
                self.url, json={"query": query, "variables": variables}
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json()
        except httpx.HTTPError as e:
            raise GatewayError(f"HTTP error calling Stash: {e}") from e
        except ValueError as e:
            raise GatewayError(f"Invalid JSON from Stash: {e}") from e

        errors = payload.get("errors")
        if errors:
            message = errors[0].get("message", "unknown error")
            logger.error("GraphQL error from Stash: %s", errors)
            raise GatewayError(message)

        data: dict[str, Any] = payload.get("data") or {}
        return data

    async def count(self, query: SceneQuery) -> int:
        """Number of scenes matching a query."""
        data = await self._execute(
            COUNT_SCENES_QUERY,
            {
                "filter": query.find_filter(per_page=0, sort="rating"),
                "scene_filter": query.scene_filter,
            },
        )
        return int(data["findScenes"]["count"])

    async def list_scenes(
        self, query: SceneQuery, sort: str = "rating", limit: int = UNLIMITED
    ) -> SceneList:
        """List scenes matching a query, highest rating first for ``sort="rating"``."""
        data = await self._execute(
            FIND_SCENES_QUERY,
            {
                "filter": query.find_filter(per_page=limit, sort=sort),
                "scene_filter": query.scene_filter,
            },
        )
        result = data["findScenes"]
        scenes = [Scene.model_validate(raw) for raw in result.get("scenes") or []]
        return SceneList(scenes=scenes, count=result.get("count") or len(scenes))

    async def set_rating(self, scene_id: str, rating: int) -> Scene:
        """Write a scene's rating (clamped to 1..100)."""
        rating = max(1, min(100, rating))
        data = await self._execute(
            SCENE_UPDATE_MUTATION, {"input": {"id": scene_id, "rating100": rating}}
        )
        logger.info("Updated scene %s rating to %d in Stash", scene_id, rating)
        return Scene.model_validate(data["sceneUpdate"])
