"""
Unit tests for event lookup, main-event precedence and random draws.
"""

import pytest

from catalog import LIU_ID, LIU_NAME
from conftest import FixedRng
from models import EventSource, GameEvent, Stats


# ============================================================================
# Lookup
# ============================================================================


@pytest.mark.unit
def test_scripted_event_is_round_plus_one(events):
    assert events.scripted_event(0).id == 1
    assert events.scripted_event(9).id == 10
    assert events.scripted_event(10) is None


@pytest.mark.unit
def test_get_event_finds_all_bands(events):
    assert events.get_event(3).title == "江湖任务"
    assert events.get_event(1002).is_npc_event
    assert events.get_event(6003).is_branch_event
    assert events.get_event(4242) is None


@pytest.mark.unit
def test_registered_event_overrides_and_clears(events):
    custom = GameEvent(1, "替换试炼", "测试", ())
    events.register_event(custom)
    assert events.get_event(1) is custom
    events.clear_registered()
    assert events.get_event(1).title == "入门试炼"


@pytest.mark.unit
def test_all_events_lists_scripted_plus_extra(events):
    events.register_event(GameEvent(77, "额外", "测试"))
    ids = [e.id for e in events.all_events()]
    assert ids[:10] == list(range(1, 11))
    assert ids[-1] == 77


# ============================================================================
# Selection Precedence
# ============================================================================


@pytest.mark.unit
def test_plain_round_is_scripted(events, player):
    event, source = events.select_event(0, player)
    assert event.id == 1
    assert source == EventSource.SCRIPTED


@pytest.mark.unit
def test_past_last_round_selects_nothing(events, player):
    assert events.select_event(10, player) == (None, None)


@pytest.mark.unit
def test_branch_at_round_five_after_justice_choice(events, player):
    player.record_key_choice(2, "A")
    event, source = events.select_event(5, player)
    assert event.id == 6001
    assert source == EventSource.BRANCH


@pytest.mark.unit
def test_branch_round_five_needs_round_two_choice(events, player):
    player.update_story_flag("justice", 6)
    player.record_key_choice(2, "B")
    event, source = events.select_event(5, player)
    assert source != EventSource.BRANCH


@pytest.mark.unit
def test_branch_beats_npc_event(events, player):
    player.stats = Stats(fame=8)
    player.set_relationship(LIU_ID, LIU_NAME, 5)
    assert events.npc_event(5, player).id == 1002
    player.record_key_choice(2, "C")
    player.update_story_flag("justice", 4)
    event, source = events.select_event(5, player)
    assert event.id == 6001
    assert source == EventSource.BRANCH


@pytest.mark.unit
def test_branch_round_eight_needs_round_eight_choice(events, player):
    player.update_story_flag("justice", 5)
    assert events.branch_event(8, player) is None
    player.record_key_choice(8, "A")
    assert events.branch_event(8, player).id == 6002


@pytest.mark.unit
def test_branch_round_nine_on_justice_alone(events, player):
    player.update_story_flag("justice", 6)
    assert events.branch_event(9, player).id == 6003


@pytest.mark.unit
def test_npc_event_round_three_on_network(events, player):
    assert events.npc_event(3, player) is None
    player.stats = Stats(network=2)
    event, source = events.select_event(3, player)
    assert event.id == 1001
    assert source == EventSource.NPC


@pytest.mark.unit
def test_npc_event_round_five_needs_liu_relationship(events, player):
    player.stats = Stats(network=5)
    player.set_relationship(LIU_ID, LIU_NAME, 2)
    assert events.npc_event(5, player) is None
    player.set_relationship(LIU_ID, LIU_NAME, 3)
    assert events.npc_event(5, player).id == 1002


@pytest.mark.unit
def test_npc_event_round_eight_on_owed_flag_and_cold_relationship(events, player):
    player.set_flag("owed_help_npc004")
    player.set_relationship(LIU_ID, LIU_NAME, 2)
    assert events.npc_event(8, player).id == 1003
    player.set_relationship(LIU_ID, LIU_NAME, 3)
    assert events.npc_event(8, player) is None


# ============================================================================
# Random Draws
# ============================================================================


@pytest.mark.unit
def test_draw_skips_triggered_ids(events):
    first = events.draw_random_event(set(), rng=FixedRng(1))
    assert first.id == "re-battle-1"
    second = events.draw_random_event({first.id}, rng=FixedRng(1))
    assert second.id == "re-battle-2"


@pytest.mark.unit
def test_draw_from_exhausted_pool(events):
    all_ids = {e.id for e in events.catalog.random_pool}
    assert events.draw_random_event(all_ids, rng=FixedRng(1)) is None


@pytest.mark.unit
def test_npc_random_event(events):
    event = events.npc_random_event(LIU_ID, rng=FixedRng(3))
    assert event.id == "liu_random_3"
    assert events.npc_random_event("npc001") is None


@pytest.mark.unit
def test_random_pool_size(events):
    assert events.random_pool_size() == 18
