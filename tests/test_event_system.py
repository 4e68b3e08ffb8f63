"""
Unit tests for option resolution, hooks and delayed effects.
"""

import pytest

from catalog import LIU_ID
from event_system import (
    HookRegistry, create_delayed_effect, INSUFFICIENT_ENERGY, INVALID_OPTION,
)
from models import (
    DelayedEffectKind, EventMeta, EventOption, GameEvent, HistoryKind, Stats,
    delayed_effect_from_dict,
)


def _event(*options):
    return GameEvent(99, "测试事件", "测试", tuple(options))


def _unlocked_ids(session):
    return {a.id for a in session.unlocked_achievements()}


# ============================================================================
# Availability
# ============================================================================


@pytest.mark.unit
def test_insufficient_energy_rejected(event_system, player, session):
    """Energy 5 cannot pay for a cost of 6; nothing changes."""
    player.stats = Stats(energy=5)
    event = _event(EventOption("A", "A", "耗尽内力", {"energy": -6}))
    result = event_system.execute_event(player, session, event, "A")
    assert not result.success
    assert result.narration == INSUFFICIENT_ENERGY
    assert player.stats == Stats(energy=5)
    assert player.history == []
    assert session.event_history == []


@pytest.mark.unit
def test_exact_energy_is_affordable(event_system, player):
    player.stats = Stats(energy=2)
    option = EventOption("A", "A", "全力一击", {"energy": -2})
    assert event_system.is_option_available(player, option)


@pytest.mark.unit
def test_invalid_option_rejected(event_system, player, session, events):
    result = event_system.execute_event(player, session, events.get_event(1), "Z")
    assert not result.success
    assert result.narration == INVALID_OPTION


@pytest.mark.unit
def test_option_availability_map(event_system, player, events):
    player.stats = Stats(energy=1)
    assert event_system.option_availability(player, events.get_event(2)) == {
        "A": False, "B": True, "C": True,
    }


# ============================================================================
# Resolution
# ============================================================================


@pytest.mark.unit
def test_achievement_unlock_applies_bonus(event_system, player, session):
    """martial 4 +2 unlocks 初出江湖 and its fame bonus."""
    player.stats = Stats(martial=4, energy=4)
    event = _event(EventOption("A", "A", "苦练", {"martial": 2}))
    result = event_system.execute_event(player, session, event, "A")
    assert result.success
    assert player.stats.martial == 6
    assert player.stats.fame == 1
    assert [a.id for a in result.achievements_unlocked] == ["ach-beginner"]
    assert _unlocked_ids(session) == {"ach-beginner"}


@pytest.mark.unit
def test_resolution_records_history(event_system, player, session, events):
    session.current_round = 0
    result = event_system.execute_event(player, session, events.get_event(1), "B")
    assert result.success
    assert result.narration == "你选择了：稳妥完成基础要求"
    event_entries = [h for h in player.history if isinstance(h.metadata, EventMeta)]
    assert len(event_entries) == 1
    assert event_entries[0].metadata.event_id == 1
    assert event_entries[0].metadata.option_id == "B"
    assert event_entries[0].kind == HistoryKind.EVENT
    assert session.event_history[0].event_id == 1
    assert session.event_history[0].option_id == "B"


@pytest.mark.unit
def test_npc_effects_are_additive(event_system, player, session, events):
    player.stats = Stats(energy=5)
    player.set_relationship(LIU_ID, "柳师兄", 5)
    event_system.execute_event(player, session, events.get_event(1001), "A")
    assert player.relationship_value(LIU_ID) == 8


@pytest.mark.unit
def test_threshold_flags_set(event_system, player, session):
    player.stats = Stats(fame=14, martial=19)
    event = _event(EventOption("A", "A", "扬名", {"fame": 1, "martial": 1}))
    event_system.execute_event(player, session, event, "A")
    assert player.get_flag("fame_threshold_reached") is True
    assert player.get_flag("martial_master_achieved") is True


# ============================================================================
# Hooks
# ============================================================================


@pytest.mark.unit
def test_hooks_fire_in_order(event_system, player, session, events):
    seen = []
    event_system.hooks.register("before_complete", lambda ctx: seen.append(("before", ctx.option.id)))
    event_system.hooks.register("after_complete", lambda ctx: seen.append(("after", ctx.event.id)))
    event_system.execute_event(player, session, events.get_event(1), "A")
    assert seen == [("before", "A"), ("after", 1)]


@pytest.mark.unit
def test_failing_hook_is_isolated(event_system, player, session, events):
    seen = []

    def broken(ctx):
        raise RuntimeError("boom")

    event_system.hooks.register("after_complete", broken)
    event_system.hooks.register("after_complete", lambda ctx: seen.append(ctx.name))
    result = event_system.execute_event(player, session, events.get_event(1), "A")
    assert result.success
    assert seen == ["after_complete"]


@pytest.mark.unit
def test_unknown_hook_name_raises():
    with pytest.raises(ValueError):
        HookRegistry().register("on_tuesday", lambda ctx: None)


@pytest.mark.unit
def test_unregister_hook():
    registry = HookRegistry()

    def fn(ctx):
        pass

    registry.register("round_end", fn)
    assert registry.count() == 1
    assert registry.unregister("round_end", fn)
    assert not registry.unregister("round_end", fn)


# ============================================================================
# Delayed Effects
# ============================================================================


@pytest.mark.unit
def test_delayed_effect_fires_once_on_its_round(event_system, player, session):
    effect = create_delayed_effect(
        "debt-call", 2, lambda p, s: True,
        lambda p, s: p.set_flag("debt_called"),
        DelayedEffectKind.FLAG, "债主上门",
    )
    event_system.register_delayed_effect(effect, session)
    assert session.delayed_effects == [effect]

    assert event_system.process_delayed_effects(player, session, 1) == []
    assert event_system.process_delayed_effects(player, session, 2) == [effect]
    assert player.has_flag("debt_called")
    assert not effect.active
    assert player.history[-1].kind == HistoryKind.DELAYED_EFFECT
    assert event_system.process_delayed_effects(player, session, 2) == []


@pytest.mark.unit
def test_delayed_effect_condition_false_stays_armed(event_system, player, session):
    effect = create_delayed_effect("never", 0, lambda p, s: False, lambda p, s: None,
                                   DelayedEffectKind.STATS, "不会发生")
    event_system.register_delayed_effect(effect, session)
    assert event_system.process_delayed_effects(player, session, 0) == []
    assert event_system.active_delayed_effects(session) == [effect]


@pytest.mark.unit
def test_failing_delayed_effect_is_skipped(event_system, player, session):
    def explode(p, s):
        raise ValueError("bad")

    bad = create_delayed_effect("bad", 0, lambda p, s: True, explode,
                                DelayedEffectKind.EVENT, "出错")
    good = create_delayed_effect("good", 0, lambda p, s: True,
                                 lambda p, s: p.set_flag("ok"),
                                 DelayedEffectKind.FLAG, "正常")
    event_system.register_delayed_effect(bad, session)
    event_system.register_delayed_effect(good, session)
    assert event_system.process_delayed_effects(player, session, 0) == [good]
    assert player.has_flag("ok")


@pytest.mark.unit
def test_cleanup_and_reset(event_system, player, session):
    done = create_delayed_effect("done", 0, lambda p, s: True, lambda p, s: None,
                                 DelayedEffectKind.FLAG, "完成")
    pending = create_delayed_effect("pending", 5, lambda p, s: True, lambda p, s: None,
                                    DelayedEffectKind.FLAG, "等待")
    event_system.register_delayed_effect(done, session)
    event_system.register_delayed_effect(pending, session)
    event_system.hooks.register("round_end", lambda ctx: None)
    event_system.process_delayed_effects(player, session, 0)
    event_system.cleanup_completed_effects(session)
    assert event_system.active_delayed_effects(session) == [pending]
    assert session.delayed_effects == [pending]

    event_system.reset(session)
    summary = event_system.summary(session)
    assert summary["active_delayed_effects"] == 0
    assert summary["registered_hooks"] == 1
    assert summary["total_events"] == 10


@pytest.mark.unit
def test_restored_delayed_effect_is_inert(event_system, player, session):
    restored = delayed_effect_from_dict({"id": "old-debt", "trigger_round": 3,
                                         "kind": "flag", "description": "旧债", "active": True})
    session.add_delayed_effect(restored)
    assert event_system.process_delayed_effects(player, session, 3) == []
    assert event_system.active_delayed_effects(session) == [restored]
    assert player.history == []
