"""
JIANGHU Engine v1.0 — Agenda Engine
Per-NPC agenda scheduler. Tracks goal progress and, when a trigger fires,
proposes the agenda action the NPC would take this round.

Results are narrative only; action effects are applied through
NPCManager.execute_npc_decision when the player engages.
"""

import logging
from dataclasses import dataclass, field

from models import AgendaContext, RELATIONSHIP_MIN

logger = logging.getLogger("jianghu.agenda")


@dataclass
class AgendaState:
    active: bool = True
    current_priority: int = 1
    last_update_round: int = 0
    goal_progress: dict = field(default_factory=dict)     # goal id -> current value


@dataclass
class AgendaResult:
    agenda_id: str
    npc_id: str
    action_id: str
    narrative: str
    priority: int


def _key(npc_id: str, agenda_id: str) -> str:
    return f"{npc_id}_{agenda_id}"


class AgendaEngine:
    def __init__(self, player, session):
        self.player = player
        self.session = session
        self.states: dict[str, AgendaState] = {}
        self.executions = 0

    def bind(self, player, session):
        self.player = player
        self.session = session
        self.reset()

    @property
    def current_round(self) -> int:
        return self.session.current_round if self.session else 0

    def register_agenda(self, npc_id: str, agenda):
        self.states[_key(npc_id, agenda.id)] = AgendaState(
            active=True,
            current_priority=agenda.priority,
            last_update_round=self.current_round,
            goal_progress={g.id: g.current_value for g in agenda.goals},
        )
        logger.debug(f"Agenda registered: {npc_id}/{agenda.id} priority {agenda.priority}")

    def process_agenda_updates(self, npc_id: str, agenda, relationship: int) -> list:
        state = self.states.get(_key(npc_id, agenda.id))
        if state is None or not state.active:
            return []
        state.last_update_round = self.current_round

        for goal in agenda.goals:
            if goal.kind == "relationship":
                state.goal_progress[goal.id] = relationship

        ctx = AgendaContext(player=self.player, round=self.current_round,
                            relationship=relationship, session=self.session)
        fired = False
        for trigger in agenda.triggers:
            try:
                if trigger.predicate(ctx):
                    fired = True
                    break
            except Exception:
                logger.exception(f"Agenda trigger {npc_id}/{trigger.kind} failed")
        if not fired:
            return []

        eligible = [a for a in agenda.actions
                    if relationship >= a.requirements.get("relationship", RELATIONSHIP_MIN)]
        if not eligible:
            return []
        # Most demanding requirement the NPC currently satisfies
        action = max(eligible, key=lambda a: a.requirements.get("relationship", RELATIONSHIP_MIN))
        self.executions += 1
        return [AgendaResult(
            agenda_id=agenda.id, npc_id=npc_id, action_id=action.id,
            narrative=f"{action.title}：{action.description}" if action.title else action.description,
            priority=state.current_priority,
        )]

    # ── Queries ──

    def agenda_state(self, npc_id: str, agenda_id: str = "default"):
        return self.states.get(_key(npc_id, agenda_id))

    def reset(self):
        self.states = {}
        self.executions = 0

    def system_summary(self) -> dict:
        states = list(self.states.values())
        return {
            "total_agendas": len(states),
            "active_agendas": sum(1 for s in states if s.active),
            "total_executions": self.executions,
        }
