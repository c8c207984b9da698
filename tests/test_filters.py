"""Tests for Stash URL filter translation."""

from urllib.parse import quote

import pytest
from hypothesis import given
from hypothesis import strategies as st

from stashbattle.gateway.filters import (
    CriterionError,
    SceneQuery,
    build_scene_filter,
    parse_search_params,
    translate_criterion,
    translate_json,
)


class TestTranslateJson:
    def test_parentheses_become_braces(self) -> None:
        assert translate_json('("a":("b":1))') == '{"a":{"b":1}}'

    def test_string_contents_untouched(self) -> None:
        assert translate_json('("q":"(x) \\"(y)\\"")') == '{"q":"(x) \\"(y)\\""}'


class TestTranslateCriterion:
    """Each criterion category maps to its GraphQL shape."""

    def test_range_is_flattened(self) -> None:
        raw = '("type":"rating100","modifier":"GREATER_THAN","value":("value":60))'
        assert translate_criterion(raw) == (
            "rating100",
            {"modifier": "GREATER_THAN", "value": 60},
        )

    def test_range_between(self) -> None:
        raw = '("type":"duration","modifier":"BETWEEN","value":("value":60,"value2":600))'
        _, value = translate_criterion(raw)
        assert value == {"modifier": "BETWEEN", "value": 60, "value2": 600}

    def test_boolean(self) -> None:
        assert translate_criterion('("type":"organized","value":"true")') == ("organized", True)
        assert translate_criterion('("type":"organized","value":"false")') == ("organized", False)

    def test_string_enum(self) -> None:
        raw = '("type":"is_missing","modifier":"EQUALS","value":"cover")'
        assert translate_criterion(raw) == ("is_missing", "cover")

    def test_multi_with_items_and_excluded(self) -> None:
        raw = (
            '("type":"performers","modifier":"INCLUDES",'
            '"value":("items":[("id":"7","label":"A")],"excluded":[("id":"9","label":"B")]))'
        )
        assert translate_criterion(raw) == (
            "performers",
            {"modifier": "INCLUDES", "value": ["7"], "excludes": ["9"]},
        )

    def test_hierarchical(self) -> None:
        raw = (
            '("type":"tags","modifier":"INCLUDES_ALL",'
            '"value":("items":[("id":"3","label":"t")],"excluded":[],"depth":-1))'
        )
        assert translate_criterion(raw) == (
            "tags",
            {"modifier": "INCLUDES_ALL", "value": ["3"], "excludes": [], "depth": -1},
        )

    def test_plain_string_criterion_passes_through(self) -> None:
        raw = '("type":"title","modifier":"INCLUDES","value":"beach")'
        assert translate_criterion(raw) == (
            "title",
            {"modifier": "INCLUDES", "value": "beach"},
        )

    @pytest.mark.parametrize("raw", ["not json", '("modifier":"EQUALS")', "[1,2]"])
    def test_malformed(self, raw: str) -> None:
        with pytest.raises(CriterionError):
            translate_criterion(raw)


class TestBuildSceneFilter:
    def test_bad_criterion_is_skipped(self) -> None:
        scene_filter = build_scene_filter(
            ['("type":"organized","value":true)', "garbage(", '("type":"rating100")']
        )
        assert scene_filter is not None
        assert scene_filter["organized"] is True
        assert "rating100" in scene_filter

    def test_nothing_usable(self) -> None:
        assert build_scene_filter(["garbage("]) is None

    @given(st.lists(st.text(max_size=40), max_size=5))
    def test_never_raises(self, criteria: list[str]) -> None:
        """Property: arbitrary criteria never abort the whole filter."""
        build_scene_filter(criteria)


class TestSceneQuery:
    def test_unfiltered_key(self) -> None:
        assert SceneQuery().key == "{}"
        assert not SceneQuery().is_filtered

    def test_key_is_order_independent(self) -> None:
        a = SceneQuery(scene_filter={"organized": True, "rating100": {"value": 1}})
        b = SceneQuery(scene_filter={"rating100": {"value": 1}, "organized": True})
        assert a.key == b.key

    def test_search_text_changes_key(self) -> None:
        assert SceneQuery(search="beach").key != SceneQuery(search="city").key

    def test_find_filter_carries_search(self) -> None:
        find_filter = SceneQuery(search="beach").find_filter(per_page=-1, sort="rating")
        assert find_filter == {"per_page": -1, "sort": "rating", "direction": "DESC", "q": "beach"}


class TestParseSearchParams:
    def test_criteria_and_search(self) -> None:
        criterion = '("type":"organized","value":true)'
        query = parse_search_params(f"?c={quote(criterion)}&q=beach+day")
        assert query.scene_filter == {"organized": True}
        assert query.search == "beach day"

    def test_empty(self) -> None:
        query = parse_search_params("")
        assert query.key == "{}"
        assert not query.is_filtered

    def test_unknown_params_ignored(self) -> None:
        assert parse_search_params("?sortby=date&disp=0").key == "{}"
