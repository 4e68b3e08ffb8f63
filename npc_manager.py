"""
JIANGHU Engine v1.0 — NPC Relationship Manager
Per-session NPC state: relationship values, moods, availability,
interaction caps, passive decay, and agenda-driven decisions.

Relationship values live here; every change is mirrored into the
player's relationship map so event conditions read one source.
"""

import logging
from dataclasses import dataclass

from models import (
    NPCState, NPCInteraction, NPCDecision, InteractionKind, Mood, ActionKind,
    AgendaContext, RelationshipType, RELATIONSHIP_MIN, RELATIONSHIP_MAX,
    npc_state_to_dict, npc_state_from_dict,
    interaction_to_dict, interaction_from_dict,
)

logger = logging.getLogger("jianghu.npc")


@dataclass
class NPCConfig:
    interactions_enabled: bool = True
    max_interactions_per_round: int = 3
    relationship_decay_rate: float = 0.2
    decay_grace_rounds: int = 5
    debug: bool = False


# ─────────────────────────────────────────────────────
# VALUE BANDS
# ─────────────────────────────────────────────────────

def initial_mood(value: int) -> Mood:
    if value >= 30:
        return Mood.HELPFUL
    if value >= 10:
        return Mood.FRIENDLY
    if value >= -10:
        return Mood.NEUTRAL
    if value >= -30:
        return Mood.BUSY
    return Mood.HOSTILE


def mood_for(value: int) -> Mood:
    if value >= 60:
        return Mood.HELPFUL
    if value >= 30:
        return Mood.FRIENDLY
    if value >= -10:
        return Mood.NEUTRAL
    if value >= -30:
        return Mood.BUSY
    return Mood.HOSTILE


def relationship_status(value: int) -> str:
    if value <= -30:
        return "hostile"
    if value <= -10:
        return "distrustful"
    if value <= 10:
        return "neutral"
    if value <= 30:
        return "friendly"
    if value <= 60:
        return "trusted"
    return "ally"


_STATUS_TO_TYPE = {
    "hostile": RelationshipType.ENEMY,
    "distrustful": RelationshipType.RIVAL,
    "neutral": RelationshipType.NEUTRAL,
    "friendly": RelationshipType.FRIEND,
    "trusted": RelationshipType.FRIEND,
    "ally": RelationshipType.MENTOR,
}


def relationship_type(value: int) -> RelationshipType:
    return _STATUS_TO_TYPE[relationship_status(value)]


def _clamp(value: int) -> int:
    return max(RELATIONSHIP_MIN, min(RELATIONSHIP_MAX, value))


# ─────────────────────────────────────────────────────
# MANAGER
# ─────────────────────────────────────────────────────

class NPCManager:
    def __init__(self, player, session, npcs, config: NPCConfig = None):
        self.player = player
        self.session = session
        self.config = config or NPCConfig()
        self.npcs = {npc.id: npc for npc in npcs}
        self.states: dict[str, NPCState] = {}
        self.interactions: list[NPCInteraction] = []
        self._trigger_handlers: list = []
        self._init_states()

    def _init_states(self, mirror: bool = True):
        self.states = {}
        for npc in self.npcs.values():
            self.states[npc.id] = NPCState(
                npc_id=npc.id,
                relationship=npc.relationship,
                mood=initial_mood(npc.relationship),
                availability=npc.availability,
                active_goals=[g.id for g in npc.agenda.goals],
            )
            if mirror:
                self.player.set_relationship(npc.id, npc.name, npc.relationship,
                                             relationship_type(npc.relationship))

    def bind(self, player, session, mirror: bool = True):
        """
        Attach to a player/session and rebuild states from config.
        mirror=False leaves the player's relationships alone (restoring a save).
        """
        self.player = player
        self.session = session
        self.reset(mirror)

    def reset(self, mirror: bool = True):
        self.interactions = []
        self._init_states(mirror)

    @property
    def current_round(self) -> int:
        return self.session.current_round if self.session else 0

    # ── Lookup ──

    def get_npc(self, npc_id: str):
        return self.npcs.get(npc_id)

    def get_state(self, npc_id: str):
        return self.states.get(npc_id)

    def all_states(self) -> dict:
        return {k: npc_state_from_dict(npc_state_to_dict(v)) for k, v in self.states.items()}

    def register_trigger_handler(self, fn):
        """fn(npc, trigger, context) is called for every matching agenda trigger."""
        self._trigger_handlers.append(fn)

    # ─────────────────────────────────────────────────
    # RELATIONSHIPS
    # ─────────────────────────────────────────────────

    def _shift(self, npc_id: str, delta: int, reason: str,
               kind: InteractionKind, counts: bool = True) -> bool:
        npc = self.npcs.get(npc_id)
        state = self.states.get(npc_id)
        if npc is None or state is None:
            return False
        old = state.relationship
        state.relationship = _clamp(old + delta)
        state.mood = mood_for(state.relationship)
        if counts:
            state.last_interaction_round = self.current_round
        self.player.set_relationship(npc_id, npc.name, state.relationship,
                                     relationship_type(state.relationship))
        self._record(NPCInteraction(
            round=self.current_round, npc_id=npc_id, kind=kind,
            description=reason or f"关系变化: {delta:+d}",
            relationship_change=delta,
            metadata={"old_value": old, "new_value": state.relationship},
        ))
        if self.config.debug:
            logger.debug(f"NPC {npc.name}: {old} -> {state.relationship} ({reason})")
        return True

    def update_relationship(self, npc_id: str, delta: int, reason: str = "") -> bool:
        return self._shift(npc_id, delta, reason, InteractionKind.DIALOGUE)

    def apply_event_effect(self, npc_id: str, delta: int, reason: str = "") -> bool:
        """Relationship change carried by an event option."""
        return self._shift(npc_id, delta, reason, InteractionKind.EVENT)

    def _record(self, rec: NPCInteraction):
        self.interactions.append(rec)

    def interactions_this_round(self, round_index: int = None) -> int:
        r = self.current_round if round_index is None else round_index
        return sum(1 for h in self.interactions
                   if h.round == r and h.kind != InteractionKind.DECAY)

    def can_interact(self, npc_id: str) -> bool:
        state = self.states.get(npc_id)
        if state is None or not self.config.interactions_enabled:
            return False
        return (state.availability
                and state.mood != Mood.HOSTILE
                and self.interactions_this_round() < self.config.max_interactions_per_round)

    # ─────────────────────────────────────────────────
    # DECISIONS
    # ─────────────────────────────────────────────────

    def _meets_requirements(self, action, relationship: int) -> bool:
        req = action.requirements or {}
        if "relationship" in req and relationship < req["relationship"]:
            return False
        for stat, (lo, hi) in (req.get("player_stats") or {}).items():
            value = self.player.stats.get(stat)
            if value < lo or value > hi:
                return False
        for flag in req.get("flags") or ():
            if not self.player.has_flag(flag):
                return False
        return True

    def _action_priority(self, npc, action, relationship: int) -> int:
        priority = 1
        if relationship > 50 and action.kind == ActionKind.HELP:
            priority += 2
        if "热心" in npc.traits and action.kind == ActionKind.HELP:
            priority += 1
        if "精于算计" in npc.traits and action.kind == ActionKind.REQUEST:
            priority += 1
        return priority

    def _narrative(self, npc, action, relationship: int) -> str:
        base = action.description or f"{npc.name}有所行动"
        if relationship > 50:
            return f"{npc.name}友善地{base}"
        if relationship < -20:
            return f"{npc.name}冷漠地{base}"
        return base

    def make_npc_decision(self, npc_id: str):
        """Pick the best eligible agenda action, or None."""
        npc = self.npcs.get(npc_id)
        state = self.states.get(npc_id)
        if npc is None or state is None or not self.can_interact(npc_id):
            return None
        rel = state.relationship
        eligible = [a for a in npc.agenda.actions
                    if a.id not in state.blocked_actions and self._meets_requirements(a, rel)]
        if not eligible:
            return None

        best = eligible[0]
        best_priority = self._action_priority(npc, best, rel)
        for action in eligible[1:]:
            p = self._action_priority(npc, action, rel)
            if p > best_priority:
                best, best_priority = action, p

        follow_ups = []
        if best.kind == ActionKind.HELP:
            follow_ups.append("express_gratitude")
        if best.kind == ActionKind.REQUEST:
            follow_ups.append("consider_request")

        return NPCDecision(
            action_id=best.id, kind=best.kind, priority=best_priority,
            requirements=dict(best.requirements), effects=dict(best.effects),
            narrative=self._narrative(npc, best, rel), follow_ups=follow_ups,
        )

    def execute_npc_decision(self, decision: NPCDecision, npc_id: str) -> bool:
        npc = self.npcs.get(npc_id)
        state = self.states.get(npc_id)
        if npc is None or state is None:
            return False
        if decision.effects:
            self.player.apply_stats_change(decision.effects, round=self.current_round,
                                           description=f"{npc.name}：{decision.narrative}")
        state.total_interactions += 1
        state.last_interaction_round = self.current_round
        self._record(NPCInteraction(
            round=self.current_round, npc_id=npc_id,
            kind=InteractionKind(decision.kind.value),
            description=decision.narrative,
            effects=dict(decision.effects),
            metadata={"action_id": decision.action_id, "priority": decision.priority},
        ))
        logger.info(f"NPC decision executed: {npc.name} {decision.action_id}")
        return True

    # ─────────────────────────────────────────────────
    # ROUND UPDATE
    # ─────────────────────────────────────────────────

    def process_round_update(self, round_index: int) -> list:
        """Decay, refresh moods and availability, then match agenda triggers."""
        self._apply_decay(round_index)

        for npc_id, state in self.states.items():
            state.mood = mood_for(state.relationship)
            state.availability = self.npcs[npc_id].availability and state.mood != Mood.HOSTILE

        matches = []
        for npc_id, npc in self.npcs.items():
            ctx = AgendaContext(player=self.player, round=round_index,
                                relationship=self.states[npc_id].relationship,
                                session=self.session)
            for trigger in npc.agenda.triggers:
                try:
                    fired = trigger.predicate(ctx)
                except Exception:
                    logger.exception(f"Agenda trigger {npc_id}/{trigger.kind} failed")
                    continue
                if not fired:
                    continue
                matches.append((npc_id, trigger))
                for handler in self._trigger_handlers:
                    try:
                        handler(npc, trigger, ctx)
                    except Exception:
                        logger.exception(f"Trigger handler failed for {npc_id}")
        return matches

    def _apply_decay(self, round_index: int):
        for npc_id, state in self.states.items():
            if state.last_interaction_round <= 0:
                continue
            elapsed = round_index - state.last_interaction_round
            if elapsed <= self.config.decay_grace_rounds:
                continue
            decay = max(1, int(round(self.config.relationship_decay_rate * elapsed)))
            self._shift(npc_id, -decay, "长时间未交互", InteractionKind.DECAY, counts=False)

    # ─────────────────────────────────────────────────
    # QUERIES / SNAPSHOT
    # ─────────────────────────────────────────────────

    def interaction_history(self, npc_id: str = None) -> list:
        if npc_id is None:
            return list(self.interactions)
        return [h for h in self.interactions if h.npc_id == npc_id]

    def system_summary(self) -> dict:
        states = list(self.states.values())
        total = sum(s.relationship for s in states)
        return {
            "total_npcs": len(self.npcs),
            "available_npcs": sum(1 for s in states if s.availability),
            "total_interactions": len(self.interactions),
            "average_relationship": total / len(states) if states else 0,
            "hostile_npcs": sum(1 for s in states if s.mood == Mood.HOSTILE),
            "allied_npcs": sum(1 for s in states if s.mood == Mood.HELPFUL),
        }

    def snapshot(self) -> list:
        """UI-facing view of every NPC."""
        out = []
        for npc_id, npc in self.npcs.items():
            state = self.states[npc_id]
            out.append({
                "id": npc_id,
                "name": npc.name,
                "title": npc.title,
                "description": npc.description,
                "traits": list(npc.traits),
                "relationship": state.relationship,
                "status": relationship_status(state.relationship),
                "mood": state.mood.value,
                "available": state.availability,
                "can_interact": self.can_interact(npc_id),
                "total_interactions": state.total_interactions,
            })
        return out

    def states_to_dict(self) -> dict:
        return {k: npc_state_to_dict(v) for k, v in self.states.items()}

    def interactions_to_list(self) -> list:
        return [interaction_to_dict(h) for h in self.interactions]

    def load_states(self, states: dict, interactions: list = None):
        """Overlay saved NPC states onto the configured cast. Unknown ids are ignored."""
        self.apply_saved_states(*parse_saved_states(states, interactions))

    def apply_saved_states(self, states: dict, interactions: list = None):
        """Install states already decoded by parse_saved_states."""
        for npc_id, state in states.items():
            if npc_id in self.npcs:
                self.states[npc_id] = state
        for npc_id, state in self.states.items():
            if not self.player.has_relationship(npc_id):
                self.player.set_relationship(npc_id, self.npcs[npc_id].name,
                                             state.relationship,
                                             relationship_type(state.relationship))
        if interactions is not None:
            self.interactions = interactions


def parse_saved_states(states, interactions=None):
    """
    Decode saved NPC states and interactions without touching any manager.
    Raises ValueError when either section has the wrong shape.
    """
    if states is None:
        states = {}
    if not isinstance(states, dict):
        raise ValueError(f"npc_states must be an object, got {type(states).__name__}")
    parsed = {}
    for npc_id, data in states.items():
        if not isinstance(data, dict):
            raise ValueError(f"npc_states[{npc_id!r}] must be an object")
        try:
            parsed[npc_id] = npc_state_from_dict({**data, "npc_id": npc_id})
        except (TypeError, AttributeError) as e:
            raise ValueError(f"npc_states[{npc_id!r}]: {e}")

    if interactions is None:
        return parsed, None
    if not isinstance(interactions, list):
        raise ValueError(f"npc_interactions must be a list, got {type(interactions).__name__}")
    history = []
    for item in interactions:
        if not isinstance(item, dict):
            raise ValueError("npc_interactions entries must be objects")
        try:
            history.append(interaction_from_dict(item))
        except (TypeError, AttributeError) as e:
            raise ValueError(f"npc_interactions: {e}")
    return parsed, history
