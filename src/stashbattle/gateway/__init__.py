"""Stash server access: GraphQL gateway and URL filter translation."""

from stashbattle.gateway.filters import UNFILTERED, SceneQuery, parse_search_params
from stashbattle.gateway.stash import GatewayError, SceneGateway, StashGateway

__all__ = [
    "UNFILTERED",
    "GatewayError",
    "SceneGateway",
    "SceneQuery",
    "StashGateway",
    "parse_search_params",
]
