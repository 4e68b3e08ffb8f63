"""
API tests for the HTTP endpoints and the WebSocket push channel.
"""

import os

import pytest
from fastapi.testclient import TestClient

from conftest import STANDARD_ANSWERS
from game_loop import GameLoop
from web import routes


@pytest.fixture
def api_game(monkeypatch, store, never_rng, clock):
    """Swap the module-level game for a deterministic one."""
    game = GameLoop(store=store, rng=never_rng, clock=clock)
    monkeypatch.setattr(routes, "game", game)
    return game


@pytest.fixture
def test_client(api_game):
    """Create FastAPI TestClient for API endpoint testing."""
    with TestClient(routes.app) as client:
        yield client


@pytest.fixture
def playing_client(test_client):
    test_client.post("/api/game/new")
    test_client.post("/api/questionnaire", json={"answers": STANDARD_ANSWERS})
    return test_client


# ============================================================================
# Lifecycle
# ============================================================================


@pytest.mark.api
def test_new_game(test_client):
    """Test starting a new game moves to the questionnaire."""
    response = test_client.post("/api/game/new")
    assert response.status_code == 200
    assert response.json() == {"success": True, "phase": "questionnaire"}


@pytest.mark.api
def test_questionnaire_listing(test_client):
    """Test the questionnaire definition endpoint."""
    questions = test_client.get("/api/questionnaire").json()["questions"]
    assert [q["id"] for q in questions] == ["background", "personality", "ambition",
                                            "age", "talent"]
    assert questions[0]["options"][2] == {"value": "family", "label": "武林世家",
                                          "description": "出身名门，武艺超群"}


@pytest.mark.api
def test_submit_questionnaire(test_client):
    """Test answering the questionnaire returns initial stats."""
    test_client.post("/api/game/new")
    body = test_client.post("/api/questionnaire", json={"answers": STANDARD_ANSWERS}).json()
    assert body["success"] is True
    assert body["phase"] == "playing"
    assert body["stats"]["martial"] == 10
    assert body["stats"]["energy"] == 9


@pytest.mark.api
def test_submit_bad_questionnaire(test_client):
    """Test a rejected questionnaire reports the error."""
    test_client.post("/api/game/new")
    body = test_client.post("/api/questionnaire",
                            json={"answers": {"background": "pirate"}}).json()
    assert body["success"] is False
    assert body["phase"] == "questionnaire"
    assert body["error"]


@pytest.mark.api
def test_questionnaire_body_validated(test_client):
    """Test a malformed body is rejected by validation."""
    response = test_client.post("/api/questionnaire", json={"answers": "family"})
    assert response.status_code == 422


@pytest.mark.api
def test_restart(playing_client):
    """Test restart returns to the questionnaire."""
    body = playing_client.post("/api/game/restart").json()
    assert body == {"success": True, "phase": "questionnaire"}


# ============================================================================
# Rounds
# ============================================================================


@pytest.mark.api
def test_choose_and_advance(playing_client):
    """Test resolving an event then advancing the round."""
    body = playing_client.post("/api/event/choose", json={"option_id": "B"}).json()
    assert body["success"] is True
    assert body["narration"] == "你选择了：稳妥完成基础要求"
    assert "初出江湖" in body["achievements"]
    assert body["random_events"] == []

    body = playing_client.post("/api/round/next").json()
    assert body["success"] is True
    assert body["progress"]["current_round"] == 1

    state = playing_client.get("/api/state").json()
    assert state["event"]["id"] == 2
    assert state["event_resolved"] is False


@pytest.mark.api
def test_choose_invalid_option(playing_client):
    """Test an invalid option returns the engine's error."""
    body = playing_client.post("/api/event/choose", json={"option_id": "Q"}).json()
    assert body == {"success": False, "error": "无效的选项"}


@pytest.mark.api
def test_next_round_before_choice(playing_client):
    """Test advancing without resolving fails."""
    body = playing_client.post("/api/round/next").json()
    assert body["success"] is False
    assert body["error"] == "当前事件尚未完成"


@pytest.mark.api
def test_choose_requires_option(playing_client):
    """Test the choice body needs an option id."""
    assert playing_client.post("/api/event/choose", json={}).status_code == 422


@pytest.mark.api
def test_acknowledge_random_events(playing_client):
    """Test acknowledging with nothing staged still succeeds."""
    assert playing_client.post("/api/random/ack").json() == {"success": True}


# ============================================================================
# Saves
# ============================================================================


@pytest.mark.api
def test_save_cycle(playing_client):
    """Test save, check, continue and delete."""
    assert playing_client.post("/api/save").json() == {"success": True}
    assert playing_client.get("/api/save").json() == {"has_save": True}

    body = playing_client.post("/api/game/continue").json()
    assert body == {"success": True, "phase": "playing"}

    assert playing_client.delete("/api/save").json() == {"success": True}
    assert playing_client.get("/api/save").json() == {"has_save": False}


@pytest.mark.api
def test_continue_without_save(test_client):
    """Test continuing with no save reports it."""
    body = test_client.post("/api/game/continue").json()
    assert body["success"] is False
    assert body["error"] == "没有可用的存档"
    assert body["phase"] == "start"


@pytest.mark.api
def test_init_game_writes_save_files(api_game, tmp_path):
    """Test file-backed saves land in the data directory."""
    routes.init_game(str(tmp_path))
    with TestClient(routes.app) as client:
        client.post("/api/game/new")
        client.post("/api/questionnaire", json={"answers": STANDARD_ANSWERS})
    assert os.path.exists(tmp_path / "jianghu-game-engine-state.json")


# ============================================================================
# NPCs
# ============================================================================


@pytest.mark.api
def test_list_npcs(playing_client):
    """Test the NPC listing with relationships."""
    body = playing_client.get("/api/npcs").json()
    assert [n["id"] for n in body["npcs"]] == ["npc001", "npc002", "npc003", "npc004"]
    assert body["relationships"]["npc004"]["value"] == 5


@pytest.mark.api
def test_interact_with_npc(playing_client):
    """Test executing an NPC decision."""
    body = playing_client.post("/api/npcs/npc004/interact").json()
    assert body["success"] is True
    assert body["npc"]["total_interactions"] == 1


@pytest.mark.api
def test_interact_with_unknown_npc(playing_client):
    """Test an unknown NPC is rejected."""
    body = playing_client.post("/api/npcs/npc999/interact").json()
    assert body["success"] is False
    assert body["npc"] is None


@pytest.mark.api
def test_npc_random_event(playing_client):
    """Test drawing from an NPC's random pool."""
    assert playing_client.get("/api/npcs/npc004/random").json()["event"]["id"] == "liu_random_3"
    assert playing_client.get("/api/npcs/npc001/random").json() == {"event": None}


# ============================================================================
# Diagnostics / WebSocket
# ============================================================================


@pytest.mark.api
def test_health_and_summary(playing_client):
    """Test the diagnostics endpoints."""
    assert playing_client.get("/api/health").json()["healthy"] is True
    body = playing_client.get("/api/summary").json()
    assert body["engine"]["phase"] == "playing"
    assert body["score"]["total"] > 0
    assert isinstance(body["advice"], list)


@pytest.mark.api
def test_websocket_sends_initial_state(playing_client):
    """Test the socket pushes full state on connect."""
    with playing_client.websocket_connect("/ws") as websocket:
        message = websocket.receive_json()
    assert message["event"] == "state_update"
    assert message["data"]["phase"] == "playing"
    assert message["data"]["event"]["id"] == 1
