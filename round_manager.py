"""
JIANGHU Engine v1.0 — Round Manager
The per-round state machine inside the playing phase.

  ROUND_START    -> restore 1 energy (round > 0), round_start hook, delayed effects
  EVENT_READY    -> select main event (branch > NPC > scripted), round_ready hook
  AWAIT_CHOICE   -> caller supplies an option id
  RESOLVED       -> event resolved, random event maybe staged, round_end hook
  RANDOM_ACK     -> staged random effects applied
  NEXT_ROUND     -> counter +1; game over at max_rounds, else ROUND_START

All round-advancing calls share one reentrancy guard.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from dice import percent_gate
from event_system import HookContext
from models import (
    RoundResult, HistoryEntry, HistoryKind, RandomMeta, AchievementMeta,
    random_event_to_dict,
)

logger = logging.getLogger("jianghu.rounds")


class RoundInProgressError(RuntimeError):
    """A round-advancing call arrived while another was still running."""


class NoCurrentEventError(RuntimeError):
    """There is no unresolved event to resolve."""


@dataclass
class RandomEventConfig:
    base_chance: float = 0.2
    chance_per_round: float = 0.025
    max_chance: float = 0.4
    first_round: int = 1
    last_round: int = 8
    warn_magnitude: int = 5

    def chance(self, round_index: int) -> float:
        if round_index < self.first_round or round_index > self.last_round:
            return 0.0
        return min(self.max_chance, self.base_chance + self.chance_per_round * round_index)


class RoundManager:
    def __init__(self, player, session, events, event_system,
                 random_config: RandomEventConfig = None, rng=None):
        self.player = player
        self.session = session
        self.events = events                # EventCatalog
        self.event_system = event_system
        self.random_config = random_config or RandomEventConfig()
        self.rng = rng
        self.current_event = None
        self.event_source = None
        self.resolved = False
        self.staged_random: list = []
        self.triggered_random_ids: set = set()
        self.processing = False

    def bind(self, player, session):
        self.player = player
        self.session = session

    @contextmanager
    def _guard(self, what: str):
        if self.processing:
            raise RoundInProgressError(f"Round in progress, rejected: {what}")
        self.processing = True
        try:
            yield
        finally:
            self.processing = False

    def _ctx(self, name: str, **extra) -> HookContext:
        return HookContext(name=name, round=self.session.current_round,
                           player=self.player, session=self.session,
                           event=self.current_event, extra=extra)

    # ─────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────

    def start_new_game(self) -> RoundResult:
        self.reset()
        logger.info("New game: random pool reset")
        return self.start_round(0)

    def start_round(self, round_index: int = None) -> RoundResult:
        with self._guard("start_round"):
            return self._start_round(round_index)

    def _start_round(self, round_index: int = None) -> RoundResult:
        r = self.session.current_round if round_index is None else round_index
        self.session.current_round = r
        self.resolved = False
        self.staged_random = []

        if r > 0:
            self.player.apply_stats_change({"energy": 1}, round=r, description="回合开始，恢复1点内力")

        self.event_system.hooks.fire("round_start", self._ctx("round_start"))
        delayed = self.event_system.process_delayed_effects(self.player, self.session, r)

        self.current_event, self.event_source = self.events.select_event(r, self.player)
        self.event_system.hooks.fire("round_ready", self._ctx("round_ready"))
        logger.info(f"Round {r} ready: "
                    f"{self.current_event.title if self.current_event else 'no event'}")

        return RoundResult(
            round=r,
            main_event=self.current_event,
            event_source=self.event_source,
            delayed_effects_triggered=[e.id for e in delayed],
            is_game_over=self.session.check_game_over(),
        )

    def execute_current_event(self, option_id: str) -> RoundResult:
        if self.current_event is None or self.resolved:
            raise NoCurrentEventError("No unresolved event this round")
        with self._guard("execute_current_event"):
            r = self.session.current_round
            result = self.event_system.execute_event(
                self.player, self.session, self.current_event, option_id)
            if not result.success:
                return RoundResult(round=r, main_event=self.current_event,
                                   event_source=self.event_source, event_result=result)

            self.resolved = True
            staged = self._offer_random_event(r)
            self.event_system.hooks.fire(
                "round_end", self._ctx("round_end", event_result=result, random_events=staged))

            return RoundResult(
                round=r,
                main_event=self.current_event,
                event_source=self.event_source,
                event_result=result,
                random_events=list(staged),
                achievements=[a.name for a in result.achievements_unlocked],
                delayed_effects_triggered=[e.id for e in result.delayed_effects],
                is_game_over=self.session.game_over,
            )

    def next_round(self) -> RoundResult:
        with self._guard("next_round"):
            if self.session.game_over:
                return RoundResult(round=self.session.current_round, is_game_over=True)
            if self.staged_random:
                self._apply_random_event_effects()

            self.session.current_round += 1
            if self.session.check_game_over():
                self.current_event = None
                self.event_source = None
                logger.info(f"Game over after {self.session.current_round} rounds")
                return RoundResult(round=self.session.current_round, is_game_over=True)
            return self._start_round(self.session.current_round)

    # ─────────────────────────────────────────────────
    # RANDOM EVENTS
    # ─────────────────────────────────────────────────

    def _offer_random_event(self, round_index: int) -> list:
        chance = self.random_config.chance(round_index)
        if chance <= 0:
            return []
        gate = percent_gate(chance, f"random_event:r{round_index}", self.rng)
        if not gate["passed"]:
            logger.debug(f"Round {round_index}: no random event (d100={gate['roll']})")
            return []
        event = self.events.draw_random_event(self.triggered_random_ids, self.rng)
        if event is None:
            return []
        self.triggered_random_ids.add(event.id)
        for key, value in event.effects.items():
            if abs(value) > self.random_config.warn_magnitude:
                logger.warning(f"Random event too strong: {event.title} {key}={value}")
        self.staged_random = [event]
        logger.info(f"Random event staged round {round_index}: {event.title} [{event.kind.value}]")
        return self.staged_random

    def apply_random_event_effects(self) -> list:
        with self._guard("apply_random_event_effects"):
            return self._apply_random_event_effects()

    def _apply_random_event_effects(self) -> list:
        r = self.session.current_round
        applied = []
        for event in self.staged_random:
            self.player.apply_stats_change(event.effects, round=r,
                                           description=f"随机事件：{event.title}")
            self.player.add_history(HistoryEntry(
                round=r,
                kind=HistoryKind.RANDOM,
                description=f"随机事件：{event.title}",
                effects=dict(event.effects),
                metadata=RandomMeta(random_event_id=event.id, event_type=event.kind.value),
            ))
            applied.append(event)
        self.staged_random = []

        if applied:
            unlocked = self.event_system.evaluate_achievements(self.player, self.session, r)
            if unlocked:
                names = [a.name for a in unlocked]
                self.player.add_history(HistoryEntry(
                    round=r,
                    kind=HistoryKind.ACHIEVEMENT,
                    description="解锁成就：" + ", ".join(names),
                    metadata=AchievementMeta(achievements_unlocked=names, source="random_events"),
                ))
        return applied

    # ─────────────────────────────────────────────────
    # ACCESSORS
    # ─────────────────────────────────────────────────

    def current_random_events(self) -> list:
        return list(self.staged_random)

    def option_availability(self) -> dict:
        if self.current_event is None:
            return {}
        return self.event_system.option_availability(self.player, self.current_event)

    def round_progress(self) -> dict:
        cur = self.session.current_round
        total = self.session.max_rounds
        return {
            "current_round": cur,
            "max_rounds": total,
            "progress_percentage": min(100.0, (cur + 1) / total * 100),
            "rounds_remaining": max(0, total - cur - 1),
            "is_game_over": self.session.game_over,
        }

    def game_stats(self) -> dict:
        return {
            "total_rounds": self.session.max_rounds,
            "events_completed": len(self.session.event_history),
            "random_events_triggered": len(self.player.history_of(HistoryKind.RANDOM)),
            "delayed_effects_active": len(self.event_system.active_delayed_effects(self.session)),
            "game_duration": self.session.game_duration(),
        }

    def triggered_random_stats(self) -> dict:
        return {
            "count": len(self.triggered_random_ids),
            "event_ids": sorted(self.triggered_random_ids),
            "remaining_events": self.events.random_pool_size() - len(self.triggered_random_ids),
        }

    def staged_to_list(self) -> list:
        return [random_event_to_dict(e) for e in self.staged_random]

    def reset(self):
        self.current_event = None
        self.event_source = None
        self.resolved = False
        self.staged_random = []
        self.triggered_random_ids = set()
        self.processing = False
        self.event_system.reset(self.session)
