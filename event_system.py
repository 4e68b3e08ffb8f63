"""
JIANGHU Engine v1.0 — Event Resolution
Resolves a chosen option against the player and session.

Resolution order for a valid, affordable option:
  1. Stat effects through the Player (rules + clamp)
  2. NPC relationship effects, additive on the player's current value
  3. Achievement evaluation, bonuses for newly unlocked ones
  4. Player history + session event history
  5. before_complete / after_complete hooks
  6. Delayed effects due this round

Hooks and delayed effects are isolated: a failure is logged and skipped.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from achievements import check_achievements, newly_unlocked
from models import (
    EventResult, HistoryEntry, HistoryKind, EventMeta, DelayedEffectMeta,
    DelayedEffect, DelayedEffectKind, RelationshipType, Stats,
)

logger = logging.getLogger("jianghu.events")

INVALID_OPTION = "无效的选项"
INSUFFICIENT_ENERGY = "内力不足，无法执行此选项"

HOOK_NAMES = ("round_start", "round_ready", "round_end",
              "before_complete", "after_complete")


# ─────────────────────────────────────────────────────
# HOOKS
# ─────────────────────────────────────────────────────

@dataclass
class HookContext:
    """Everything a lifecycle subscriber can see."""
    name: str
    round: int
    player: object = None
    session: object = None
    event: object = None
    option: object = None
    old_stats: Optional[Stats] = None
    new_stats: Optional[Stats] = None
    extra: dict = field(default_factory=dict)


class HookRegistry:
    """Named subscriber lists, invoked in registration order."""

    def __init__(self):
        self._hooks: dict[str, list] = {name: [] for name in HOOK_NAMES}

    def register(self, name: str, fn: Callable[[HookContext], None]):
        if name not in self._hooks:
            raise ValueError(f"Unknown hook: {name}")
        self._hooks[name].append(fn)

    def unregister(self, name: str, fn) -> bool:
        subscribers = self._hooks.get(name, [])
        if fn in subscribers:
            subscribers.remove(fn)
            return True
        return False

    def fire(self, name: str, ctx: HookContext) -> int:
        """Run every subscriber. Returns how many failed."""
        failures = 0
        for fn in list(self._hooks.get(name, [])):
            try:
                fn(ctx)
            except Exception:
                failures += 1
                logger.exception(f"Hook '{name}' failed in {getattr(fn, '__name__', fn)}")
        return failures

    def count(self) -> int:
        return sum(len(v) for v in self._hooks.values())

    def clear(self):
        for subscribers in self._hooks.values():
            subscribers.clear()


# ─────────────────────────────────────────────────────
# EVENT SYSTEM
# ─────────────────────────────────────────────────────

def _npc_relationship_type(value: int) -> RelationshipType:
    if value >= 30:
        return RelationshipType.FRIEND
    if value <= -30:
        return RelationshipType.ENEMY
    return RelationshipType.NEUTRAL


def create_delayed_effect(id: str, trigger_round: int, condition, effect,
                          kind: DelayedEffectKind, description: str) -> DelayedEffect:
    return DelayedEffect(id=id, trigger_round=trigger_round, kind=DelayedEffectKind(kind),
                         description=description, condition=condition,
                         effect=effect, active=True)


class EventSystem:
    def __init__(self, events=None):
        self.events = events            # EventCatalog, for summary()
        self.hooks = HookRegistry()

    # ── Option checks ──

    def is_option_available(self, player, option) -> bool:
        return player.stats.energy + option.energy_cost >= 0

    def option_availability(self, player, event) -> dict:
        return {opt.id: self.is_option_available(player, opt) for opt in event.options}

    # ── Resolution ──

    def execute_event(self, player, session, event, option_id: str) -> EventResult:
        option = event.option(option_id)
        if option is None:
            logger.info(f"Event {event.id}: invalid option {option_id!r}")
            return EventResult(success=False, narration=INVALID_OPTION)
        if not self.is_option_available(player, option):
            logger.info(f"Event {event.id}/{option_id}: insufficient energy "
                        f"({player.stats.energy}{option.energy_cost:+d})")
            return EventResult(success=False, narration=INSUFFICIENT_ENERGY)

        round_index = session.current_round
        old_stats = player.stats
        player.apply_stats_change(option.effects, round=round_index,
                                  description=f"{event.title}：{option.description}")

        for npc_effect in option.npc_effects:
            value = player.relationship_value(npc_effect.npc_id) + npc_effect.relationship_change
            player.set_relationship(npc_effect.npc_id, npc_effect.npc_name, value,
                                    _npc_relationship_type(value))
            logger.debug(f"NPC relationship {npc_effect.npc_name}: "
                         f"{npc_effect.relationship_change:+d} ({npc_effect.reason})")

        unlocked = self.evaluate_achievements(player, session, round_index)

        player.add_history(HistoryEntry(
            round=round_index,
            kind=HistoryKind.EVENT,
            description=f"第{round_index + 1}轮事件：{event.title}",
            effects=dict(option.effects),
            metadata=EventMeta(
                event_id=event.id, option_id=option.id,
                option_description=option.description,
                achievements_unlocked=[a.name for a in unlocked],
            ),
        ))
        session.add_event_history(event.id, option.id, option.effects)

        ctx = HookContext(name="before_complete", round=round_index, player=player,
                          session=session, event=event, option=option,
                          old_stats=old_stats, new_stats=player.stats)
        self.hooks.fire("before_complete", ctx)

        self._check_threshold_flags(player)

        ctx.name = "after_complete"
        ctx.new_stats = player.stats
        self.hooks.fire("after_complete", ctx)

        triggered = self.process_delayed_effects(player, session, round_index)

        return EventResult(
            success=True,
            effects=dict(option.effects),
            delayed_effects=triggered,
            achievements_unlocked=unlocked,
            narration=f"你选择了：{option.description}",
        )

    def evaluate_achievements(self, player, session, round_index: int) -> list:
        """Unlock, apply bonuses, store the updated list on the session."""
        before = session.achievements
        after = check_achievements(player.stats, before)
        unlocked = newly_unlocked(before, after)
        for ach in unlocked:
            if ach.bonus:
                player.apply_stats_change(ach.bonus, round=round_index,
                                          description=f"成就奖励：{ach.name}")
        if unlocked:
            logger.info(f"Achievements unlocked: {', '.join(a.name for a in unlocked)}")
        session.achievements = after
        return unlocked

    def _check_threshold_flags(self, player):
        if player.stats.fame >= 15 and not player.has_flag("fame_threshold_reached"):
            player.set_flag("fame_threshold_reached", True)
        if player.stats.martial >= 20 and not player.has_flag("martial_master_achieved"):
            player.set_flag("martial_master_achieved", True)

    # ─────────────────────────────────────────────────
    # DELAYED EFFECTS
    # The session owns the list; restored effects have no callables and stay inert.
    # ─────────────────────────────────────────────────

    def register_delayed_effect(self, effect: DelayedEffect, session):
        session.add_delayed_effect(effect)

    def process_delayed_effects(self, player, session, round_index: int) -> list:
        """Run every armed effect due this round whose condition holds."""
        triggered = []
        for effect in session.delayed_effects_for_round(round_index):
            if not effect.armed:
                continue
            try:
                if not effect.condition(player, session):
                    continue
                effect.effect(player, session)
            except Exception:
                logger.exception(f"Delayed effect {effect.id} failed")
                continue
            effect.active = False
            triggered.append(effect)
            player.add_history(HistoryEntry(
                round=round_index,
                kind=HistoryKind.DELAYED_EFFECT,
                description=effect.description,
                metadata=DelayedEffectMeta(effect_id=effect.id, effect_kind=effect.kind.value),
            ))
            logger.info(f"Delayed effect fired: {effect.id}")
        return triggered

    def active_delayed_effects(self, session) -> list:
        return [e for e in session.delayed_effects if e.active]

    def cleanup_completed_effects(self, session):
        session.delayed_effects = self.active_delayed_effects(session)

    # ─────────────────────────────────────────────────
    # HOUSEKEEPING
    # ─────────────────────────────────────────────────

    def reset(self, session=None):
        """Drop the session's delayed effects. Hooks stay registered."""
        if session is not None:
            session.delayed_effects = []

    def summary(self, session=None) -> dict:
        return {
            "total_events": len(self.events.all_events()) if self.events else 0,
            "active_delayed_effects": len(self.active_delayed_effects(session)) if session else 0,
            "registered_hooks": self.hooks.count(),
        }
