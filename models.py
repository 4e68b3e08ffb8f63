"""
JIANGHU Engine v1.0 — Data Models
Core data structures for a jianghu life-sim session.

Configuration records (events, achievements, NPC definitions, questionnaire)
are frozen dataclasses: loaded once, shared by reference, never mutated.
Session records (stats snapshots, history, NPC state, session counters) are
plain dataclasses owned by the session aggregate.

  - Stats is frozen; every change produces a new Stats through rules.py
  - History metadata is a closed set of tagged variants, one per entry kind
  - All session state converts to JSON-ready dicts for save/load
  - Append-only history lists on Player and NPC interaction log
"""

import time
from dataclasses import dataclass, field, asdict, replace, fields
from enum import Enum
from typing import Callable, ClassVar, Optional, Union


# ─────────────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────────────

ENERGY_MAX = 12
MAX_ROUNDS = 10

CORE_STATS = ("martial", "fame", "network", "energy", "virtue")
EXTENDED_STATS = ("mental_state", "skill_potential", "luck", "reputation")
ALL_STATS = CORE_STATS + EXTENDED_STATS

# Event id bands
NPC_EVENT_MIN_ID = 1000
BRANCH_EVENT_MIN_ID = 6000

RELATIONSHIP_MIN = -100
RELATIONSHIP_MAX = 100


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds (save timestamps)."""
    return int(time.time() * 1000)


# ─────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────

class HistoryKind(str, Enum):
    EVENT = "event"
    RANDOM = "random"
    ACHIEVEMENT = "achievement"
    DELAYED_EFFECT = "delayed_effect"


class RelationshipType(str, Enum):
    FRIEND = "friend"
    ENEMY = "enemy"
    NEUTRAL = "neutral"
    MENTOR = "mentor"
    RIVAL = "rival"


class Mood(str, Enum):
    HELPFUL = "helpful"
    FRIENDLY = "friendly"
    NEUTRAL = "neutral"
    BUSY = "busy"
    HOSTILE = "hostile"


class DelayedEffectKind(str, Enum):
    FLAG = "flag"
    DEBT = "debt"
    RELATIONSHIP = "relationship"
    STATS = "stats"
    EVENT = "event"


class RandomEventKind(str, Enum):
    BATTLE = "battle"
    SOCIAL = "social"
    STRATEGY = "strategy"
    NATURAL = "natural"
    MYSTERY = "mystery"
    NEGATIVE = "negative"


class ActionKind(str, Enum):
    DIALOGUE = "dialogue"
    HELP = "help"
    REQUEST = "request"
    CONFLICT = "conflict"


class InteractionKind(str, Enum):
    DIALOGUE = "dialogue"
    HELP = "help"
    REQUEST = "request"
    CONFLICT = "conflict"
    EVENT = "event"
    DECAY = "decay"              # passive drift, never counts toward the cap


class EventSource(str, Enum):
    SCRIPTED = "scripted"
    BRANCH = "branch"
    NPC = "npc"


# ─────────────────────────────────────────────────────
# STATS
# ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Stats:
    """The attribute vector. Five core stats plus four extended ones."""
    martial: int = 0            # 武艺
    fame: int = 0               # 威望
    network: int = 0            # 人脉
    energy: int = 5             # 内力, 0..ENERGY_MAX
    virtue: int = 0             # 侠义值
    mental_state: int = 50
    skill_potential: int = 50
    luck: int = 50
    reputation: int = 0

    def get(self, key: str, default: int = 0) -> int:
        if key in ALL_STATS:
            return getattr(self, key)
        return default

    def with_values(self, **values) -> "Stats":
        known = {k: v for k, v in values.items() if k in ALL_STATS}
        return replace(self, **known)

    def core(self) -> dict:
        return {k: getattr(self, k) for k in CORE_STATS}

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Stats":
        data = data or {}
        return cls(**{k: int(data[k]) for k in ALL_STATS if k in data})


# ─────────────────────────────────────────────────────
# HISTORY (tagged metadata variants)
# ─────────────────────────────────────────────────────

@dataclass
class StatChangeMeta:
    TAG: ClassVar[str] = "stat_change"
    old_stats: dict = field(default_factory=dict)
    new_stats: dict = field(default_factory=dict)


@dataclass
class EventMeta:
    TAG: ClassVar[str] = "event"
    event_id: int = 0
    option_id: str = ""
    option_description: str = ""
    achievements_unlocked: list = field(default_factory=list)


@dataclass
class RandomMeta:
    TAG: ClassVar[str] = "random"
    random_event_id: str = ""
    event_type: str = ""


@dataclass
class AchievementMeta:
    TAG: ClassVar[str] = "achievement"
    achievements_unlocked: list = field(default_factory=list)
    source: str = ""            # event, random_events


@dataclass
class DelayedEffectMeta:
    TAG: ClassVar[str] = "delayed_effect"
    effect_id: str = ""
    effect_kind: str = ""


HistoryMeta = Union[StatChangeMeta, EventMeta, RandomMeta,
                    AchievementMeta, DelayedEffectMeta]

META_TYPES = {cls.TAG: cls for cls in (
    StatChangeMeta, EventMeta, RandomMeta, AchievementMeta, DelayedEffectMeta,
)}


def meta_to_dict(meta: Optional[HistoryMeta]) -> Optional[dict]:
    if meta is None:
        return None
    return {"tag": meta.TAG, **asdict(meta)}


def meta_from_dict(data: Optional[dict]) -> Optional[HistoryMeta]:
    if not data:
        return None
    cls = META_TYPES.get(data.get("tag", ""))
    if cls is None:
        return None
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class HistoryEntry:
    """One line of the player's append-only history."""
    round: int
    kind: HistoryKind
    description: str
    effects: dict = field(default_factory=dict)
    metadata: Optional[HistoryMeta] = None


def history_entry_to_dict(entry: HistoryEntry) -> dict:
    return {
        "round": entry.round,
        "kind": entry.kind.value,
        "description": entry.description,
        "effects": dict(entry.effects),
        "metadata": meta_to_dict(entry.metadata),
    }


def history_entry_from_dict(data: dict) -> HistoryEntry:
    kind = data.get("kind", data.get("type", "event"))
    return HistoryEntry(
        round=data.get("round", 0),
        kind=HistoryKind(kind) if kind in HistoryKind._value2member_map_ else HistoryKind.EVENT,
        description=data.get("description", ""),
        effects=dict(data.get("effects", {}) or {}),
        metadata=meta_from_dict(data.get("metadata")),
    )


# ─────────────────────────────────────────────────────
# DEBTS / GRUDGES
# ─────────────────────────────────────────────────────

@dataclass
class Debt:
    """Something the player owes."""
    id: str
    creditor: str                       # NPC id or event id
    type: str = "favor"                 # favor, money, action, information
    amount: int = 1
    description: str = ""
    due_round: Optional[int] = None
    repaid: bool = False


@dataclass
class Grudge:
    """A standing grudge held by or against the player."""
    id: str
    target: str
    type: str = "insult"                # insult, betrayal, injury, loss
    severity: int = 1                   # 1-10
    description: str = ""
    active: bool = True


# ─────────────────────────────────────────────────────
# RELATIONSHIPS / STORY FLAGS
# ─────────────────────────────────────────────────────

@dataclass
class PlayerRelationship:
    target_id: str
    target_name: str
    value: int = 0                      # -100..100
    type: RelationshipType = RelationshipType.NEUTRAL


def relationship_to_dict(rel: PlayerRelationship) -> dict:
    return {"target_id": rel.target_id, "target_name": rel.target_name,
            "value": rel.value, "type": rel.type.value}


def relationship_from_dict(data: dict) -> PlayerRelationship:
    rtype = data.get("type", "neutral")
    return PlayerRelationship(
        target_id=data.get("target_id", data.get("targetId", "")),
        target_name=data.get("target_name", data.get("targetName", "")),
        value=int(data.get("value", 0)),
        type=RelationshipType(rtype) if rtype in RelationshipType._value2member_map_
        else RelationshipType.NEUTRAL,
    )


STORY_PATHS = ("justice", "friendship", "power", "corruption")
STORY_PATH_MIN = 0
STORY_PATH_MAX = 10


@dataclass
class StoryFlags:
    """Story-path counters and key-choice record."""
    justice: int = 0
    friendship: int = 0
    power: int = 0
    corruption: int = 0
    special_events: set = field(default_factory=set)
    key_choices: dict = field(default_factory=dict)     # 1-based round -> option id

    def path(self, name: str) -> int:
        if name not in STORY_PATHS:
            raise KeyError(f"Unknown story path: {name}")
        return getattr(self, name)


def story_flags_to_dict(flags: StoryFlags) -> dict:
    return {
        "justice": flags.justice,
        "friendship": flags.friendship,
        "power": flags.power,
        "corruption": flags.corruption,
        "special_events": sorted(flags.special_events),
        "key_choices": {str(k): v for k, v in flags.key_choices.items()},
    }


def story_flags_from_dict(data: Optional[dict]) -> StoryFlags:
    data = data or {}
    return StoryFlags(
        justice=data.get("justice", data.get("justicePath", 0)),
        friendship=data.get("friendship", data.get("friendshipPath", 0)),
        power=data.get("power", data.get("powerPath", 0)),
        corruption=data.get("corruption", data.get("corruptionPath", 0)),
        special_events=set(data.get("special_events", data.get("specialEvents", []))),
        key_choices={int(k): v for k, v in
                     (data.get("key_choices", data.get("keyChoices", {})) or {}).items()},
    )


# ─────────────────────────────────────────────────────
# NPC CONFIGURATION (immutable)
# ─────────────────────────────────────────────────────

@dataclass
class AgendaContext:
    """What an agenda trigger predicate can see."""
    player: object
    round: int
    relationship: int
    session: object = None


@dataclass(frozen=True)
class AgendaGoal:
    id: str
    description: str
    target_value: int
    current_value: int = 0
    kind: str = "relationship"          # relationship, stats, event, item


@dataclass(frozen=True)
class AgendaTrigger:
    kind: str                           # round, player_stats, relationship, event
    predicate: Callable[[AgendaContext], bool]
    threshold: Optional[int] = None


@dataclass(frozen=True)
class AgendaAction:
    id: str
    kind: ActionKind
    title: str = ""
    description: str = ""
    requirements: dict = field(default_factory=dict)
    # requirements keys: relationship (min), player_stats {stat: (min, max)}, flags [..]
    effects: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Agenda:
    id: str = "default"
    goals: tuple = ()
    triggers: tuple = ()
    actions: tuple = ()
    priority: int = 1


@dataclass(frozen=True)
class NPC:
    """Static NPC definition."""
    id: str
    name: str
    title: str = ""
    description: str = ""
    relationship: int = 0               # initial value
    availability: bool = True
    traits: tuple = ()
    agenda: Agenda = field(default_factory=Agenda)


# ─────────────────────────────────────────────────────
# NPC SESSION STATE
# ─────────────────────────────────────────────────────

@dataclass
class NPCState:
    """Per-session mutable projection of an NPC."""
    npc_id: str
    relationship: int = 0
    mood: Mood = Mood.NEUTRAL
    availability: bool = True
    active_goals: list = field(default_factory=list)
    blocked_actions: list = field(default_factory=list)
    last_interaction_round: int = 0
    total_interactions: int = 0


def npc_state_to_dict(state: NPCState) -> dict:
    data = asdict(state)
    data["mood"] = state.mood.value
    return data


def npc_state_from_dict(data: dict) -> NPCState:
    mood = data.get("mood", data.get("currentMood", "neutral"))
    return NPCState(
        npc_id=data.get("npc_id", data.get("npcId", "")),
        relationship=int(data.get("relationship", 0)),
        mood=Mood(mood) if mood in Mood._value2member_map_ else Mood.NEUTRAL,
        availability=data.get("availability", True),
        active_goals=list(data.get("active_goals", data.get("activeGoals", []))),
        blocked_actions=list(data.get("blocked_actions", data.get("blockedActions", []))),
        last_interaction_round=data.get("last_interaction_round",
                                        data.get("lastInteractionRound", 0)),
        total_interactions=data.get("total_interactions", data.get("totalInteractions", 0)),
    )


@dataclass
class NPCInteraction:
    """Append-only NPC interaction record."""
    round: int
    npc_id: str
    kind: InteractionKind
    description: str
    relationship_change: int = 0
    effects: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)


def interaction_to_dict(rec: NPCInteraction) -> dict:
    data = asdict(rec)
    data["kind"] = rec.kind.value
    return data


def interaction_from_dict(data: dict) -> NPCInteraction:
    kind = data.get("kind", "dialogue")
    return NPCInteraction(
        round=data.get("round", 0),
        npc_id=data.get("npc_id", ""),
        kind=InteractionKind(kind) if kind in InteractionKind._value2member_map_
        else InteractionKind.DIALOGUE,
        description=data.get("description", ""),
        relationship_change=data.get("relationship_change", 0),
        effects=dict(data.get("effects", {}) or {}),
        metadata=dict(data.get("metadata", {}) or {}),
    )


@dataclass
class NPCDecision:
    action_id: str
    kind: ActionKind
    priority: int
    requirements: dict = field(default_factory=dict)
    effects: dict = field(default_factory=dict)
    narrative: str = ""
    follow_ups: list = field(default_factory=list)


# ─────────────────────────────────────────────────────
# EVENTS (immutable)
# ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class NPCRelationshipEffect:
    npc_id: str
    npc_name: str
    relationship_change: int
    reason: str = ""


@dataclass(frozen=True)
class EventOption:
    id: str
    label: str
    description: str
    effects: dict = field(default_factory=dict)
    npc_effects: tuple = ()             # NPCRelationshipEffect
    consequences: tuple = ()            # long-term hint strings
    requires_confirmation: bool = False

    @property
    def energy_cost(self) -> int:
        return self.effects.get("energy", 0)


@dataclass(frozen=True)
class GameEvent:
    id: int
    title: str
    description: str
    options: tuple = ()

    def option(self, option_id: str) -> Optional[EventOption]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    @property
    def is_npc_event(self) -> bool:
        return NPC_EVENT_MIN_ID <= self.id < BRANCH_EVENT_MIN_ID

    @property
    def is_branch_event(self) -> bool:
        return self.id >= BRANCH_EVENT_MIN_ID

    @property
    def is_scripted_event(self) -> bool:
        return self.id < NPC_EVENT_MIN_ID


@dataclass(frozen=True)
class RandomEvent:
    id: str
    kind: RandomEventKind
    title: str
    description: str
    effects: dict = field(default_factory=dict)


def option_to_dict(opt: EventOption) -> dict:
    return {
        "id": opt.id,
        "label": opt.label,
        "description": opt.description,
        "effects": dict(opt.effects),
        "npc_effects": [asdict(e) for e in opt.npc_effects],
        "consequences": list(opt.consequences),
        "requires_confirmation": opt.requires_confirmation,
    }


def event_to_dict(event: GameEvent) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "options": [option_to_dict(o) for o in event.options],
    }


def random_event_to_dict(event: RandomEvent) -> dict:
    return {"id": event.id, "kind": event.kind.value, "title": event.title,
            "description": event.description, "effects": dict(event.effects)}


# ─────────────────────────────────────────────────────
# ACHIEVEMENTS / QUESTIONNAIRE (immutable)
# ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    condition: Callable[[Stats], bool]
    bonus: dict = field(default_factory=dict)
    unlocked: bool = False


def achievement_to_dict(ach: Achievement) -> dict:
    return {"id": ach.id, "name": ach.name, "description": ach.description,
            "bonus": dict(ach.bonus), "unlocked": ach.unlocked}


@dataclass(frozen=True)
class QuestionOption:
    value: str
    label: str
    description: str
    effects: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Question:
    id: str
    question: str
    options: tuple = ()

    def option(self, value: str) -> Optional[QuestionOption]:
        for opt in self.options:
            if opt.value == value:
                return opt
        return None


QUESTIONNAIRE_FIELDS = ("background", "personality", "ambition", "age", "talent")


# ─────────────────────────────────────────────────────
# DELAYED EFFECTS
# ─────────────────────────────────────────────────────

@dataclass
class DelayedEffect:
    """
    An effect scheduled for a future round.
    condition/effect are None on records restored from a save; those are
    descriptive only and never execute.
    """
    id: str
    trigger_round: int
    kind: DelayedEffectKind
    description: str
    condition: Optional[Callable] = None     # (player, session) -> bool
    effect: Optional[Callable] = None        # (player, session) -> None
    active: bool = True

    @property
    def armed(self) -> bool:
        return self.active and self.condition is not None and self.effect is not None


def delayed_effect_to_dict(eff: DelayedEffect) -> dict:
    return {"id": eff.id, "trigger_round": eff.trigger_round,
            "kind": eff.kind.value, "description": eff.description,
            "active": eff.active}


def delayed_effect_from_dict(data: dict) -> DelayedEffect:
    kind = data.get("kind", data.get("type", "flag"))
    return DelayedEffect(
        id=data.get("id", ""),
        trigger_round=data.get("trigger_round", data.get("triggerRound", 0)),
        kind=DelayedEffectKind(kind) if kind in DelayedEffectKind._value2member_map_
        else DelayedEffectKind.FLAG,
        description=data.get("description", ""),
        active=data.get("active", data.get("isActive", False)),
    )


# ─────────────────────────────────────────────────────
# RESULTS
# ─────────────────────────────────────────────────────

@dataclass
class EventResult:
    success: bool
    effects: dict = field(default_factory=dict)
    delayed_effects: list = field(default_factory=list)
    achievements_unlocked: list = field(default_factory=list)
    narration: str = ""


@dataclass
class RoundResult:
    round: int
    main_event: Optional[GameEvent] = None
    event_source: Optional[EventSource] = None
    event_result: Optional[EventResult] = None
    random_events: list = field(default_factory=list)
    achievements: list = field(default_factory=list)
    delayed_effects_triggered: list = field(default_factory=list)
    is_game_over: bool = False


# ─────────────────────────────────────────────────────
# SESSION STATE
# ─────────────────────────────────────────────────────

@dataclass
class EventHistoryEntry:
    round: int
    event_id: int
    option_id: str
    effects: dict = field(default_factory=dict)


@dataclass
class SessionState:
    """Round counter, questionnaire, achievements and event log of one playthrough."""
    current_round: int = 0
    max_rounds: int = MAX_ROUNDS
    questionnaire: Optional[dict] = None
    achievements: list = field(default_factory=list)        # Achievement
    event_history: list = field(default_factory=list)       # EventHistoryEntry
    delayed_effects: list = field(default_factory=list)     # DelayedEffect
    game_over: bool = False
    started_at: int = field(default_factory=now_ms)
    last_saved_at: int = field(default_factory=now_ms)

    # ── Helpers ──

    def add_event_history(self, event_id: int, option_id: str, effects: dict):
        self.event_history.append(EventHistoryEntry(
            round=self.current_round, event_id=event_id,
            option_id=option_id, effects=dict(effects),
        ))

    def add_delayed_effect(self, effect: DelayedEffect):
        self.delayed_effects.append(effect)

    def delayed_effects_for_round(self, round_index: int) -> list:
        return [e for e in self.delayed_effects
                if e.trigger_round == round_index and e.active]

    def unlocked_achievements(self) -> list:
        return [a for a in self.achievements if a.unlocked]

    def check_game_over(self) -> bool:
        if self.current_round >= self.max_rounds:
            self.game_over = True
        return self.game_over

    def has_questionnaire(self) -> bool:
        return self.questionnaire is not None

    def game_duration(self) -> int:
        return now_ms() - self.started_at

    def touch_saved(self):
        self.last_saved_at = now_ms()


def session_to_dict(session: SessionState) -> dict:
    return {
        "current_round": session.current_round,
        "max_rounds": session.max_rounds,
        "questionnaire": dict(session.questionnaire) if session.questionnaire else None,
        "achievements": [{"id": a.id, "unlocked": a.unlocked} for a in session.achievements],
        "event_history": [asdict(e) for e in session.event_history],
        "delayed_effects": [delayed_effect_to_dict(e) for e in session.delayed_effects],
        "game_over": session.game_over,
        "started_at": session.started_at,
        "last_saved_at": session.last_saved_at,
    }


def session_from_dict(data: dict, achievement_defs) -> SessionState:
    """
    Rebuild a SessionState. achievement_defs is the catalog's achievement
    list; saved entries only carry id + unlocked, unknown ids are dropped.
    """
    by_id = {a.id: a for a in achievement_defs}
    achievements = []
    for adata in data.get("achievements", []):
        ach = by_id.get(adata.get("id", ""))
        if ach is not None:
            achievements.append(replace(ach, unlocked=bool(adata.get("unlocked", False))))

    history = []
    for hdata in data.get("event_history", []):
        history.append(EventHistoryEntry(
            round=hdata.get("round", 0),
            event_id=hdata.get("event_id", hdata.get("eventId", 0)),
            option_id=hdata.get("option_id", hdata.get("selectedOption", "")),
            effects=dict(hdata.get("effects", {}) or {}),
        ))

    session = SessionState(
        current_round=data.get("current_round", 0),
        max_rounds=data.get("max_rounds", MAX_ROUNDS),
        questionnaire=data.get("questionnaire"),
        achievements=achievements,
        event_history=history,
        delayed_effects=[delayed_effect_from_dict(d) for d in data.get("delayed_effects", [])],
        game_over=data.get("game_over", False),
    )
    if "started_at" in data:
        session.started_at = data["started_at"]
    if "last_saved_at" in data:
        session.last_saved_at = data["last_saved_at"]
    return session
