"""
Tests for the GameLoop state machine: questionnaire, rounds, NPC
consequences, save/load and diagnostics.
"""

import json

import pytest

from catalog import LIU_ID
from conftest import FixedRng, STANDARD_ANSWERS
from game_loop import GameLoop, GamePhase, DEFAULT_PLAYER_NAME
from models import EventSource, HistoryKind, Stats
from persistence import STATE_KEY
from test_persistence import V1_SNAPSHOT


def _play(game, *choices):
    """Resolve the current event with each choice, advancing between them."""
    for option_id in choices:
        assert game.execute_event_choice(option_id), game.last_error
        assert game.next_round(), game.last_error


def _unlocked(game):
    return {a.id for a in game.session.unlocked_achievements()}


# ============================================================================
# Phases / Questionnaire
# ============================================================================


@pytest.mark.unit
def test_initial_phase_is_start(game):
    assert game.phase == GamePhase.START
    assert game.player.name == DEFAULT_PLAYER_NAME
    assert game.last_error is None


@pytest.mark.unit
def test_start_new_game_waits_for_questionnaire(game):
    phases = []
    game._on_phase_change = lambda phase, data: phases.append((phase, data["question_count"]))
    assert game.start_new_game()
    assert game.phase == GamePhase.QUESTIONNAIRE
    assert phases == [(GamePhase.QUESTIONNAIRE, 5)]
    assert game.action_log[-1]["type"] == "SESSION"


@pytest.mark.unit
def test_questionnaire_sets_initial_stats(game, store):
    game.start_new_game()
    assert game.complete_questionnaire(STANDARD_ANSWERS)
    stats = game.player.stats
    assert (stats.martial, stats.fame, stats.network, stats.energy, stats.virtue) == (10, 6, 0, 9, 0)
    assert game.player.background == "武林世家"
    assert game.session.questionnaire == STANDARD_ANSWERS
    assert game.phase == GamePhase.PLAYING
    assert game.current_event().id == 1
    assert not _unlocked(game)
    assert STATE_KEY in store.data


@pytest.mark.unit
def test_questionnaire_outside_its_phase(game):
    assert not game.complete_questionnaire(STANDARD_ANSWERS)
    assert game.last_error.startswith("当前阶段无法填写问卷")
    assert game.action_log[-1]["type"] == "ERROR"


@pytest.mark.unit
@pytest.mark.parametrize("answers", [
    {**STANDARD_ANSWERS, "zodiac": "dragon"},
    {k: v for k, v in STANDARD_ANSWERS.items() if k != "talent"},
    {**STANDARD_ANSWERS, "age": "99"},
])
def test_questionnaire_rejects_bad_answers(game, answers):
    game.start_new_game()
    assert not game.complete_questionnaire(answers)
    assert game.phase == GamePhase.QUESTIONNAIRE
    assert game.player.stats == Stats()
    assert game.last_error


@pytest.mark.unit
def test_restart_resets_everything(playing_game):
    _play(playing_game, "A")
    assert playing_game.restart_game()
    assert playing_game.phase == GamePhase.QUESTIONNAIRE
    assert playing_game.session.current_round == 0
    assert playing_game.session.event_history == []
    assert playing_game.player.history == []
    assert playing_game.player.relationship_value(LIU_ID) == 5


# ============================================================================
# Rounds
# ============================================================================


@pytest.mark.unit
def test_choice_resolves_event(playing_game):
    updates = []
    playing_game._on_state_update = updates.append
    assert playing_game.execute_event_choice("B")
    assert playing_game.player.stats.martial == 11
    assert playing_game.rounds.resolved
    assert playing_game.player.key_choice(1) == "B"
    assert {"ach-beginner", "ach-energetic"} <= _unlocked(playing_game)
    assert updates and updates[-1]["event_resolved"] is True
    assert any(n["type"] == "EVENT" for n in playing_game.narration_buffer)


@pytest.mark.unit
def test_invalid_choice_fails_without_side_effects(playing_game):
    before = playing_game.player.stats
    assert not playing_game.execute_event_choice("Z")
    assert playing_game.last_error == "无效的选项"
    assert playing_game.player.stats == before
    assert playing_game.player.key_choice(1) is None
    assert playing_game.narration_buffer[-1]["type"] == "SYSTEM"


@pytest.mark.unit
def test_choosing_twice_fails(playing_game):
    assert playing_game.execute_event_choice("A")
    assert not playing_game.execute_event_choice("B")
    assert playing_game.last_error == "当前没有待处理的事件"


@pytest.mark.unit
def test_next_round_requires_resolution(playing_game):
    assert not playing_game.next_round()
    assert playing_game.last_error == "当前事件尚未完成"
    assert playing_game.session.current_round == 0


@pytest.mark.unit
def test_choice_outside_playing_phase(game):
    assert not game.execute_event_choice("A")
    assert not game.next_round()
    assert not game.acknowledge_random_events()


@pytest.mark.unit
def test_justice_branch_beats_npc_event(playing_game):
    """Round-2 choice A opens the hero branch at round index 5, ahead of 1002."""
    _play(playing_game, "B", "A", "C", "C", "C")
    game = playing_game
    assert game.session.current_round == 5
    assert game.player.story_flags.justice == 4
    assert game.events.npc_event(5, game.player).id == 1002
    assert game.current_event().id == 6001
    assert game.rounds.event_source == EventSource.BRANCH
    assert game.get_full_state()["event_source"] == "branch"


@pytest.mark.unit
def test_rescue_choice_opens_later_branches(playing_game):
    """Event 8 option A adds justice +2, enough for the round 8 and 9 branches."""
    game = playing_game
    _play(game, "B", "A", "C", "C", "C")
    assert game.current_event().id == 6001
    _play(game, "B", "C")
    assert game.current_event().id == 8
    assert game.player.story_flags.justice == 4

    _play(game, "A")
    assert game.player.story_flags.justice == 6
    assert game.player.key_choice(8) == "A"
    assert game.session.current_round == 8
    assert game.current_event().id == 6002
    assert game.rounds.event_source == EventSource.BRANCH
    assert any(e["type"] == "STORY" for e in game.action_log)

    _play(game, "B")
    assert game.current_event().id == 6003


@pytest.mark.unit
def test_nested_choice_leaves_story_flags_alone(playing_game):
    """A choice attempted from inside resolution is rejected and records nothing."""
    game = playing_game
    _play(game, "B")
    nested = []
    game.event_system.hooks.register(
        "before_complete", lambda ctx: nested.append(game.execute_event_choice("A")))

    assert game.execute_event_choice("B")
    assert nested == [False]
    assert game.player.key_choice(2) == "B"
    assert game.player.story_flags.justice == 0
    assert game.last_error is None


@pytest.mark.unit
def test_failing_callbacks_do_not_break_operations(game, caplog):
    def boom(*args):
        raise RuntimeError("ui down")

    game._on_phase_change = boom
    game._on_state_update = boom
    game._on_narration = boom
    game._on_log_entry = boom

    assert game.start_new_game()
    assert game.complete_questionnaire(STANDARD_ANSWERS)
    assert game.execute_event_choice("B")
    assert game.next_round()
    assert game.session.current_round == 1
    assert len(game.action_log) > 0
    assert "Callback state_update failed" in caplog.text


@pytest.mark.unit
def test_liu_invitation_sets_owed_flag(playing_game):
    game = playing_game
    _play(game, "C", "C", "B")
    assert game.session.current_round == 3
    assert game.current_event().id == 1001

    assert game.execute_event_choice("A")
    assert game.player.get_flag("owed_help_npc004") is True
    assert game.player.relationship_value(LIU_ID) == 10
    assert game.npc_manager.get_state(LIU_ID).relationship == 10
    assert "npc_event_1001_A" in game.player.story_flags.special_events
    assert game.player.key_choice(4) is None
    assert any(e["type"] == "NPC" for e in game.action_log)


@pytest.mark.unit
def test_full_game_ends_in_result(playing_game, store):
    phases = []
    playing_game._on_phase_change = lambda phase, data: phases.append(data)
    _play(playing_game, *["B"] * 10)
    game = playing_game
    assert game.phase == GamePhase.RESULT
    assert game.session.game_over
    assert game.session.current_round == 10
    assert phases[-1]["phase"] == "result"
    assert "score" in phases[-1]
    assert STATE_KEY in store.data
    assert not game.next_round()
    assert game.get_full_state()["game_over"] is True


@pytest.mark.unit
def test_agenda_results_after_round(playing_game):
    playing_game.execute_event_choice("A")
    results = playing_game.last_agenda_results
    assert [r.action_id for r in results] == ["request_favor"]
    assert results[0].npc_id == LIU_ID
    assert any(e["type"] == "AGENDA" for e in playing_game.action_log)
    liu = playing_game.npc_manager.get_state(LIU_ID).relationship
    assert playing_game.agenda_progress()[LIU_ID]["cultivate_protagonist"] == liu


# ============================================================================
# Random Events
# ============================================================================


@pytest.fixture
def lucky_game(store, clock):
    game = GameLoop(store=store, rng=FixedRng(1), clock=clock)
    game.start_new_game()
    game.complete_questionnaire(STANDARD_ANSWERS)
    return game


@pytest.mark.unit
def test_random_event_staged_and_acknowledged(lucky_game):
    _play(lucky_game, "B")
    assert lucky_game.execute_event_choice("B")
    staged = lucky_game.current_random_events()
    assert [e.id for e in staged] == ["re-battle-1"]
    assert lucky_game.get_full_state()["random_events"][0]["id"] == "re-battle-1"
    assert lucky_game.health_check()["recommendations"] == ["有未确认的随机事件"]

    assert lucky_game.acknowledge_random_events()
    assert lucky_game.current_random_events() == []
    assert len(lucky_game.player.history_of(HistoryKind.RANDOM)) == 1


@pytest.mark.unit
def test_next_round_applies_pending_random_event(lucky_game):
    _play(lucky_game, "B", "B")
    assert lucky_game.current_random_events() == []
    assert len(lucky_game.player.history_of(HistoryKind.RANDOM)) == 1


# ============================================================================
# NPC Operations
# ============================================================================


@pytest.mark.unit
def test_npc_decision_applies_help(playing_game):
    martial = playing_game.player.stats.martial
    assert playing_game.execute_npc_decision(LIU_ID)
    assert playing_game.player.stats.martial == martial + 1
    assert playing_game.narration_buffer[-1]["type"] == "NPC"


@pytest.mark.unit
def test_npc_decision_failures(game):
    assert not game.execute_npc_decision(LIU_ID)
    game.start_new_game()
    game.complete_questionnaire(STANDARD_ANSWERS)
    assert not game.execute_npc_decision("npc999")
    assert not game.execute_npc_decision("npc001")
    assert game.last_error == "npc001 现在无法互动"


@pytest.mark.unit
def test_update_npc_relationship(playing_game):
    assert playing_game.update_npc_relationship("npc002", 5, "切磋")
    assert playing_game.relationship_snapshot()["npc002"]["value"] == 13
    assert not playing_game.update_npc_relationship("npc999", 5)
    assert playing_game.can_interact_with_npc("npc002")


@pytest.mark.unit
def test_npc_random_event(playing_game):
    assert playing_game.npc_random_event(LIU_ID)["id"] == "liu_random_3"
    assert playing_game.npc_random_event("npc001") is None


# ============================================================================
# Save / Load
# ============================================================================


@pytest.mark.unit
def test_reload_restores_session(playing_game, store, never_rng, clock):
    """Save at round 3, reload in a new engine: round, stats and unlocks match."""
    _play(playing_game, "A", "A", "B")
    assert playing_game.save_game()
    assert playing_game.session.current_round == 3

    restored = GameLoop(store=store, rng=never_rng, clock=clock)
    assert restored.load_game()
    assert restored.phase == GamePhase.PLAYING
    assert restored.session.current_round == 3
    assert restored.player.stats == playing_game.player.stats
    assert _unlocked(restored) == _unlocked(playing_game)
    assert restored.player.story_flags.key_choices == playing_game.player.story_flags.key_choices
    assert restored.current_event().id == playing_game.current_event().id
    assert not restored.rounds.resolved
    assert restored.npc_manager.get_state(LIU_ID).relationship == \
        playing_game.npc_manager.get_state(LIU_ID).relationship


@pytest.mark.unit
def test_reload_mid_round_keeps_resolution(playing_game, store, never_rng, clock):
    playing_game.execute_event_choice("A")
    restored = GameLoop(store=store, rng=never_rng, clock=clock)
    assert restored.load_game()
    assert restored.rounds.resolved
    assert restored.current_event().id == 1
    assert restored.next_round()
    assert restored.session.current_round == 1


@pytest.mark.unit
def test_expired_save_is_ignored(playing_game, store, never_rng, clock):
    playing_game.save_game()
    clock.advance_days(8)
    restored = GameLoop(store=store, rng=never_rng, clock=clock)
    assert not restored.has_saved_game()
    assert not restored.load_game()
    assert restored.last_error == "没有可用的存档"
    assert restored.phase == GamePhase.START


@pytest.mark.unit
def test_save_requires_a_game(game):
    assert not game.save_game()
    assert game.last_error == "没有进行中的游戏"


@pytest.mark.unit
def test_clear_save(playing_game):
    assert playing_game.has_saved_game()
    assert playing_game.clear_save()
    assert not playing_game.has_saved_game()


@pytest.mark.unit
def test_corrupt_save_fails_cleanly(game, store):
    store.set(STATE_KEY, "][")
    assert not game.load_game()
    assert game.last_error.startswith("存档损坏")


@pytest.mark.unit
def test_save_with_bad_timestamp_counts_as_no_save(playing_game, store):
    assert playing_game.save_game()
    data = json.loads(store.data[STATE_KEY])
    data["timestamp"] = "2026-10-18"
    store.set(STATE_KEY, json.dumps(data))
    assert not playing_game.has_saved_game()
    assert not playing_game.load_game()
    assert playing_game.last_error.startswith("存档损坏")


@pytest.mark.unit
@pytest.mark.parametrize("key,value", [
    ("npc_states", ["oops"]),
    ("npc_states", {LIU_ID: "oops"}),
    ("npc_states", {LIU_ID: {"relationship": "lots"}}),
    ("npc_interactions", {"round": 1}),
    ("npc_interactions", ["oops"]),
    ("triggered_random_ids", "re-battle-1"),
    ("triggered_random_ids", [1, 2]),
])
def test_malformed_snapshot_keeps_current_session(playing_game, store, key, value):
    game = playing_game
    game.execute_event_choice("B")
    assert game.save_game()
    snapshot = json.loads(store.data[STATE_KEY])
    snapshot[key] = value
    session, player = game.session, game.player

    assert not game.continue_game(snapshot)
    assert game.last_error.startswith("存档数据无效")
    assert game.session is session
    assert game.player is player
    assert game.rounds.session is session
    assert game.npc_manager.player is player
    assert game.rounds.resolved
    assert game.phase == GamePhase.PLAYING


@pytest.mark.unit
def test_continue_from_legacy_snapshot(game):
    assert game.continue_game(V1_SNAPSHOT)
    assert game.phase == GamePhase.PLAYING
    assert game.session.current_round == 4
    assert game.player.name == "老江湖"
    assert game.player.stats.martial == 5
    assert game.player.story_flags.justice == 4
    assert "ach-beginner" in _unlocked(game)
    assert len(game.session.achievements) == 8
    assert game.rounds.triggered_random_ids == {"re-mystery-1", "re-social-2"}
    assert game.current_event().id == 5


@pytest.mark.unit
def test_continue_finished_game_shows_result(game):
    snapshot = {"currentRound": 10, "playerStats": {"martial": 30}, "isGameOver": True}
    assert game.continue_game(snapshot)
    assert game.phase == GamePhase.RESULT


@pytest.mark.unit
def test_continue_without_questionnaire(game):
    assert game.continue_game({"currentRound": 0, "playerStats": {}})
    assert game.phase == GamePhase.QUESTIONNAIRE


@pytest.mark.unit
def test_continue_rejects_garbage(game):
    assert not game.continue_game({"nonsense": True})
    assert game.phase == GamePhase.START
    assert game.last_error.startswith("存档数据无效")


# ============================================================================
# State / Diagnostics
# ============================================================================


@pytest.mark.unit
def test_full_state_shape(playing_game):
    state = playing_game.get_full_state()
    assert state["phase"] == "playing"
    assert state["event"]["id"] == 1
    assert state["event_source"] == "scripted"
    assert state["option_availability"] == {"A": True, "B": True, "C": True}
    assert state["player"]["stats"]["martial"] == 10
    assert len(state["achievements"]) == 8
    assert len(state["npcs"]) == 4
    assert state["relationships"][LIU_ID]["value"] == 5
    assert state["progress"]["current_round"] == 0
    assert state["agenda_goals"][LIU_ID] == {"cultivate_protagonist": 0, "strengthen_faction": 0}


@pytest.mark.unit
def test_health_check_healthy_game(playing_game):
    report = playing_game.health_check()
    assert report == {"healthy": True, "issues": [], "recommendations": []}


@pytest.mark.unit
def test_health_check_flags_inconsistency(playing_game):
    playing_game.session.game_over = True
    playing_game.player.stats = Stats(martial=-3)
    report = playing_game.health_check()
    assert not report["healthy"]
    assert "游戏已结束但仍处于进行阶段" in report["issues"]
    assert any("martial" in issue for issue in report["issues"])


@pytest.mark.unit
def test_summary_and_advice(playing_game):
    summary = playing_game.engine_summary()
    assert summary["phase"] == "playing"
    assert summary["npcs"]["total_npcs"] == 4
    assert summary["agendas"]["total_agendas"] == 4
    assert summary["rules"] == 4
    assert playing_game.stats_score()["combat"] == 10 * 10 + 9 * 8
    assert "人脉薄弱，建议多结交江湖朋友" in playing_game.stats_advice()
