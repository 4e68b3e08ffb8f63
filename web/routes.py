"""
JIANGHU Engine v1.0 — FastAPI Routes
Player-facing endpoints and the WebSocket push channel.
"""

import json
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from game_loop import GameLoop
from persistence import JsonFileStore, SaveManager
from web.websocket import ConnectionManager

logger = logging.getLogger("jianghu.web")


# ─────────────────────────────────────────────────────
# APP SETUP
# ─────────────────────────────────────────────────────

app = FastAPI(title="Jianghu — JIANGHU Engine", version="1.0")
manager = ConnectionManager()
game = GameLoop()


def init_game(data_dir: str = None):
    """Attach file-backed saves and wire WebSocket callbacks. Called from jianghu.py."""
    if data_dir:
        game.saves = SaveManager(JsonFileStore(data_dir))
        logger.info(f"Saves in {data_dir}")

    def on_phase_change(phase, data):
        manager.broadcast_soon("phase_change", data)

    def on_state_update(state):
        manager.broadcast_soon("state_update", state)

    def on_log_entry(entry):
        manager.broadcast_soon("log_entry", entry)

    def on_narration(narr_type, text):
        manager.broadcast_soon("narration", {"type": narr_type, "text": text})

    game._on_phase_change = on_phase_change
    game._on_state_update = on_state_update
    game._on_log_entry = on_log_entry
    game._on_narration = on_narration


def _result(ok: bool, **extra) -> JSONResponse:
    body = {"success": ok, **extra}
    if not ok:
        body["error"] = game.last_error or "操作失败"
    return JSONResponse(body)


# ─────────────────────────────────────────────────────
# WEBSOCKET
# ─────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await manager.connect(ws)
    try:
        # Send initial state on connect
        state_data = game.get_full_state()
        await ws.send_text(json.dumps({"event": "state_update", "data": state_data},
                                      ensure_ascii=False))

        # Keep connection alive; client messages are keepalives only
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(ws)


# ─────────────────────────────────────────────────────
# STATE
# ─────────────────────────────────────────────────────

@app.get("/api/state")
async def get_state():
    """Full game state for UI rendering."""
    return JSONResponse(game.get_full_state())


@app.get("/api/questionnaire")
async def get_questionnaire():
    questions = []
    for q in game.catalog.questionnaire:
        questions.append({
            "id": q.id,
            "question": q.question,
            "options": [{"value": o.value, "label": o.label, "description": o.description}
                        for o in q.options],
        })
    return JSONResponse({"questions": questions})


@app.get("/api/health")
async def health():
    return JSONResponse(game.health_check())


@app.get("/api/summary")
async def summary():
    """Engine summary plus stat score and advice."""
    return JSONResponse({
        "engine": game.engine_summary(),
        "score": game.stats_score(),
        "advice": game.stats_advice(),
    })


# ─────────────────────────────────────────────────────
# GAME LIFECYCLE
# ─────────────────────────────────────────────────────

@app.post("/api/game/new")
async def new_game():
    return _result(game.start_new_game(), phase=game.phase.value)


@app.post("/api/game/continue")
async def continue_game():
    """Resume from the stored save."""
    return _result(game.load_game(), phase=game.phase.value)


@app.post("/api/game/restart")
async def restart_game():
    return _result(game.restart_game(), phase=game.phase.value)


class QuestionnaireRequest(BaseModel):
    answers: dict[str, str]


@app.post("/api/questionnaire")
async def submit_questionnaire(req: QuestionnaireRequest):
    ok = game.complete_questionnaire(req.answers)
    return _result(ok, phase=game.phase.value,
                   stats=game.player.stats.to_dict() if ok else None)


# ─────────────────────────────────────────────────────
# ROUNDS
# ─────────────────────────────────────────────────────

class ChoiceRequest(BaseModel):
    option_id: str


@app.post("/api/event/choose")
async def choose(req: ChoiceRequest):
    ok = game.execute_event_choice(req.option_id)
    extra = {}
    result = game.last_round_result
    if ok and result is not None:
        extra = {
            "narration": result.event_result.narration if result.event_result else "",
            "achievements": list(result.achievements),
            "random_events": game.rounds.staged_to_list(),
        }
    return _result(ok, **extra)


@app.post("/api/random/ack")
async def acknowledge_random():
    return _result(game.acknowledge_random_events())


@app.post("/api/round/next")
async def next_round():
    ok = game.next_round()
    return _result(ok, phase=game.phase.value, progress=game.round_progress())


# ─────────────────────────────────────────────────────
# SAVES
# ─────────────────────────────────────────────────────

@app.post("/api/save")
async def save_game():
    return _result(game.save_game())


@app.get("/api/save")
async def has_save():
    return JSONResponse({"has_save": game.has_saved_game()})


@app.delete("/api/save")
async def clear_save():
    return _result(game.clear_save())


# ─────────────────────────────────────────────────────
# NPCS
# ─────────────────────────────────────────────────────

@app.get("/api/npcs")
async def npcs():
    return JSONResponse({"npcs": game.npc_snapshot(),
                         "relationships": game.relationship_snapshot()})


@app.post("/api/npcs/{npc_id}/interact")
async def interact(npc_id: str):
    ok = game.execute_npc_decision(npc_id)
    return _result(ok, npc=next((n for n in game.npc_snapshot() if n["id"] == npc_id), None))


@app.get("/api/npcs/{npc_id}/random")
async def npc_random(npc_id: str):
    event = game.npc_random_event(npc_id)
    return JSONResponse({"event": event})
