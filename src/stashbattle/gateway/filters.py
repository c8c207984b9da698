"""Translate Stash URL filter parameters into GraphQL filter objects.

The Stash UI keeps the active scene filter in the page URL: one ``c``
parameter per criterion (JSON with parentheses instead of braces) plus an
optional ``q`` free-text search. The battle core never sees that encoding; it
only gets a ``SceneQuery`` with a stable ``key``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

logger = logging.getLogger(__name__)

# Criteria whose URL shape differs from the GraphQL SceneFilterType shape
BOOLEAN_CRITERIA = frozenset({"organized", "interactive", "performer_favorite"})
STRING_ENUM_CRITERIA = frozenset({"is_missing", "has_markers"})
MULTI_CRITERIA = frozenset({"performers", "groups", "movies", "galleries"})
HIERARCHICAL_CRITERIA = frozenset({"tags", "studios", "performer_tags"})


class CriterionError(ValueError):
    """A single URL criterion could not be translated."""


@dataclass
class SceneQuery:
    """A Gateway-shaped scene filter plus its canonical key."""

    scene_filter: dict[str, Any] | None = None
    search: str | None = None

    @property
    def is_filtered(self) -> bool:
        return bool(self.scene_filter) or bool(self.search)

    @property
    def key(self) -> str:
        """Canonical serialization; equal keys mean equal result sets."""
        payload: dict[str, Any] = {}
        if self.scene_filter:
            payload["scene_filter"] = self.scene_filter
        if self.search:
            payload["q"] = self.search
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def find_filter(self, per_page: int, sort: str, direction: str = "DESC") -> dict[str, Any]:
        """Build a FindFilterType for this query."""
        find_filter: dict[str, Any] = {
            "per_page": per_page,
            "sort": sort,
            "direction": direction,
        }
        if self.search:
            find_filter["q"] = self.search
        return find_filter


UNFILTERED = SceneQuery()


def translate_json(text: str) -> str:
    """Swap URL-style parentheses for JSON braces outside of string literals."""
    in_string = False
    escape = False
    out: list[str] = []
    for char in text:
        if escape:
            escape = False
            out.append(char)
            continue
        if char == "\\" and in_string:
            escape = True
        elif char == '"':
            in_string = not in_string
        elif not in_string and char == "(":
            char = "{"
        elif not in_string and char == ")":
            char = "}"
        out.append(char)
    return "".join(out)


def _ids(values: Any) -> list[Any]:
    """Reduce a list of ``{id, label}`` objects (or bare ids) to ids."""
    if not values:
        return []
    if not isinstance(values, list):
        raise CriterionError(f"Expected a list of items, got {values!r}")
    return [v["id"] if isinstance(v, dict) and v.get("id") else v for v in values]


def translate_criterion(raw: str) -> tuple[str, Any]:
    """Translate one URL ``c`` value into a (filter name, GraphQL value) pair.

    Raises:
        CriterionError: If the criterion is malformed
    """
    try:
        criterion = json.loads(translate_json(raw))
    except json.JSONDecodeError as e:
        raise CriterionError(f"Invalid criterion JSON: {e}") from e

    if not isinstance(criterion, dict):
        raise CriterionError("Criterion is not an object")

    filter_type = criterion.pop("type", None)
    if not filter_type or not isinstance(filter_type, str):
        raise CriterionError("Criterion missing type")

    value = criterion.get("value")
    modifier = criterion.get("modifier")

    if filter_type in BOOLEAN_CRITERIA:
        return filter_type, value is True or value == "true"

    if filter_type in STRING_ENUM_CRITERIA:
        return filter_type, value

    if filter_type in MULTI_CRITERIA:
        result: dict[str, Any] = {"modifier": modifier}
        if isinstance(value, dict) and "items" in value:
            result["value"] = _ids(value.get("items"))
            excluded = _ids(value.get("excluded"))
            if excluded:
                result["excludes"] = excluded
        elif isinstance(value, list):
            result["value"] = _ids(value)
        else:
            result["value"] = value
        return filter_type, result

    if filter_type in HIERARCHICAL_CRITERIA:
        value = value if isinstance(value, dict) else {}
        return filter_type, {
            "modifier": modifier,
            "value": _ids(value.get("items")),
            "excludes": _ids(value.get("excluded")),
            "depth": value.get("depth", 0),
        }

    # Range criteria nest {value, value2} one level too deep
    if isinstance(value, dict) and "value" in value:
        flattened: dict[str, Any] = {"modifier": modifier, "value": value["value"]}
        if "value2" in value:
            flattened["value2"] = value["value2"]
        return filter_type, flattened

    return filter_type, criterion


def build_scene_filter(criteria: list[str]) -> dict[str, Any] | None:
    """Build a SceneFilterType from URL criteria.

    A criterion that fails to translate is logged and skipped; the rest of the
    filter is still built.
    """
    scene_filter: dict[str, Any] = {}
    for raw in criteria:
        try:
            name, value = translate_criterion(raw)
        except CriterionError as e:
            logger.warning("Skipping filter criterion %r: %s", raw, e)
            continue
        scene_filter[name] = value
    return scene_filter or None


def parse_search_params(search: str) -> SceneQuery:
    """Parse a Stash scenes-page query string (``?c=...&q=...``)."""
    params = parse_qs(search.lstrip("?"))
    query_text = (params.get("q") or [""])[0].strip()
    return SceneQuery(
        scene_filter=build_scene_filter(params.get("c", [])),
        search=query_text or None,
    )
