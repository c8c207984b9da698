"""Tests for the JSON API."""

import random
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway
from stashbattle.battle.cache import SceneCache
from stashbattle.battle.engine import BattleEngine
from stashbattle.db.repository import CacheEntryRepository, SessionStateRepository
from stashbattle.web.app import app


@pytest.fixture
def client(gateway: FakeGateway) -> Iterator[TestClient]:
    """Client whose engine talks to the fake gateway."""
    with TestClient(app) as test_client:
        app.state.engine = BattleEngine(
            gateway,
            SceneCache(gateway, repository=CacheEntryRepository()),
            sessions=SessionStateRepository(),
            rng=random.Random(1),
        )
        yield test_client


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.text == "ok"


class TestTurns:
    def test_turn_and_choose(self, client: TestClient) -> None:
        turn = client.get("/api/turn").json()
        assert turn["status"] == "pair"
        assert turn["mode"] == "swiss"

        # Same pair until a decision is made
        assert client.get("/api/turn").json()["left"]["id"] == turn["left"]["id"]

        response = client.post("/api/choose", json={"winner_id": turn["left"]["id"]})
        assert response.status_code == 200
        decision = response.json()
        assert decision["winner_id"] == turn["left"]["id"]
        assert decision["loser_id"] == turn["right"]["id"]
        assert decision["winner_delta"] > 0

    def test_choose_errors(self, client: TestClient) -> None:
        assert client.post("/api/choose", json={"winner_id": "1"}).status_code == 409

        client.get("/api/turn")
        response = client.post("/api/choose", json={"winner_id": "not-shown"})
        assert response.status_code == 404

    def test_skip(self, client: TestClient) -> None:
        client.get("/api/turn")
        response = client.post("/api/turn/skip")
        assert response.status_code == 200
        assert response.json()["status"] == "pair"


class TestGauntletApi:
    def test_skip_blocked_while_champion_defends(self, client: TestClient) -> None:
        assert client.post("/api/mode", json={"mode": "gauntlet"}).json()["mode"] == "gauntlet"
        turn = client.post("/api/filter", json={"search": "?q=Scene+7"}).json()
        assert turn["left"]["id"] == "7"

        client.post("/api/choose", json={"winner_id": "7"})
        turn = client.get("/api/turn").json()
        assert turn["left_streak"] == 1
        assert client.post("/api/turn/skip").status_code == 409

        state = client.get("/api/state").json()
        assert state["champion"]["id"] == "7"
        assert state["search_text"] == "Scene 7"

        assert client.post("/api/run/new").status_code == 200
        assert client.get("/api/state").json()["champion"] is None

    def test_invalid_mode(self, client: TestClient) -> None:
        assert client.post("/api/mode", json={"mode": "knockout"}).status_code == 422


class TestMaintenance:
    def test_reset_and_refresh(self, client: TestClient, gateway: FakeGateway) -> None:
        client.get("/api/turn")
        calls = len(gateway.list_calls)

        assert client.post("/api/reset").json()["status"] == "pair"
        assert len(gateway.list_calls) == calls

        assert client.post("/api/cache/refresh").json()["status"] == "pair"
        assert len(gateway.list_calls) > calls
