"""
JIANGHU Engine v1.0 — Player
The player aggregate: stats, history, flags, debts, grudges,
relationships and story-path flags. Owned by the session.
"""

import copy
import logging
from dataclasses import replace

from models import (
    Stats, HistoryEntry, HistoryKind, StatChangeMeta,
    Debt, Grudge, PlayerRelationship, RelationshipType, StoryFlags,
    STORY_PATHS, STORY_PATH_MIN, STORY_PATH_MAX,
    RELATIONSHIP_MIN, RELATIONSHIP_MAX,
    history_entry_to_dict, history_entry_from_dict,
    relationship_to_dict, relationship_from_dict,
    story_flags_to_dict, story_flags_from_dict,
)
from rules import clamp_stats

logger = logging.getLogger("jianghu.player")

LARGE_DELTA = 10
HIGH_VALUE = 30

# (1-based round, option id) -> story-path deltas
KEY_CHOICE_TRANSITIONS = {
    (2, "A"): {"justice": 4},
    (7, "A"): {"corruption": 4, "justice": -2},
}


def _clamp_relationship(value: int) -> int:
    return max(RELATIONSHIP_MIN, min(RELATIONSHIP_MAX, value))


class Player:
    """
    A player. Pass a RulesEngine for gameplay; without one, stat changes
    fall back to the minimal legacy clamp.
    """

    def __init__(self, stats: Stats = None, rules=None, name: str = "",
                 title: str = "", background: str = ""):
        self.stats: Stats = stats if stats is not None else Stats()
        self.rules = rules
        self.history: list[HistoryEntry] = []
        self.relationships: dict[str, PlayerRelationship] = {}
        self.flags: dict = {}
        self.debts: list[Debt] = []
        self.grudges: list[Grudge] = []
        self.story_flags = StoryFlags()
        self.name = name
        self.title = title
        self.background = background
        self.relationship_version = 0

    # ─────────────────────────────────────────────────
    # STATS
    # ─────────────────────────────────────────────────

    def apply_stats_change(self, delta: dict, round: int = 0,
                           description: str = "属性变化") -> Stats:
        """Apply a delta, record one history entry, return the new stats."""
        old = self.stats
        if self.rules is not None:
            new = self.rules.apply_changes(old, delta, {"round": round})
        else:
            new = clamp_stats(old, delta)
        self.stats = new

        for key, change in (delta or {}).items():
            if not change or not hasattr(new, key):
                continue
            value = getattr(new, key)
            logger.debug(f"Stat {key}: {getattr(old, key)} -> {value} ({change:+d})")
            if abs(change) > LARGE_DELTA:
                logger.warning(f"Unusually large change: {key} {change:+d}")
            if value > HIGH_VALUE and key != "energy":
                logger.warning(f"Unusually high value: {key} = {value}")

        self.add_history(HistoryEntry(
            round=round,
            kind=HistoryKind.EVENT,
            description=description,
            effects=dict(delta or {}),
            metadata=StatChangeMeta(old_stats=old.to_dict(), new_stats=new.to_dict()),
        ))
        return new

    def current_stats(self) -> dict:
        return self.stats.core()

    def add_history(self, entry: HistoryEntry):
        self.history.append(entry)

    def history_of(self, kind: HistoryKind) -> list:
        return [h for h in self.history if h.kind == kind]

    # ─────────────────────────────────────────────────
    # RELATIONSHIPS
    # ─────────────────────────────────────────────────

    def set_relationship(self, target_id: str, target_name: str, value: int,
                         type: RelationshipType = RelationshipType.NEUTRAL):
        existing = self.relationships.get(target_id)
        old_value = existing.value if existing else None
        new_value = _clamp_relationship(value)
        self.relationships[target_id] = PlayerRelationship(
            target_id=target_id, target_name=target_name,
            value=new_value, type=RelationshipType(type),
        )
        if old_value != new_value:
            self.relationship_version += 1
            logger.debug(f"Relationship {target_name}: {old_value or 0} -> {new_value} "
                         f"(v{self.relationship_version})")

    def modify_relationship(self, target_id: str, delta: int) -> bool:
        rel = self.relationships.get(target_id)
        if rel is None:
            return False
        old_value = rel.value
        rel.value = _clamp_relationship(rel.value + delta)
        if rel.value > 60:
            rel.type = RelationshipType.FRIEND
        elif rel.value < -60:
            rel.type = RelationshipType.ENEMY
        else:
            rel.type = RelationshipType.NEUTRAL
        if rel.value != old_value:
            self.relationship_version += 1
        return True

    def get_relationship(self, target_id: str):
        rel = self.relationships.get(target_id)
        return replace(rel) if rel else None

    def relationship_value(self, target_id: str, default: int = 0) -> int:
        rel = self.relationships.get(target_id)
        return rel.value if rel else default

    def has_relationship(self, target_id: str) -> bool:
        return target_id in self.relationships

    def relationships_view(self) -> dict:
        return {k: replace(v) for k, v in self.relationships.items()}

    # ─────────────────────────────────────────────────
    # FLAGS / DEBTS / GRUDGES
    # ─────────────────────────────────────────────────

    def set_flag(self, key: str, value=True):
        self.flags[key] = value

    def get_flag(self, key: str, default=None):
        return self.flags.get(key, default)

    def has_flag(self, key: str) -> bool:
        return key in self.flags

    def clear_flag(self, key: str):
        self.flags.pop(key, None)

    def add_debt(self, debt: Debt):
        debt.repaid = False
        self.debts.append(debt)

    def repay_debt(self, debt_id: str) -> bool:
        for debt in self.debts:
            if debt.id == debt_id and not debt.repaid:
                debt.repaid = True
                return True
        return False

    def active_debts(self) -> list:
        return [d for d in self.debts if not d.repaid]

    def add_grudge(self, grudge: Grudge):
        grudge.active = True
        self.grudges.append(grudge)

    def resolve_grudge(self, grudge_id: str) -> bool:
        for grudge in self.grudges:
            if grudge.id == grudge_id and grudge.active:
                grudge.active = False
                return True
        return False

    def active_grudges(self) -> list:
        return [g for g in self.grudges if g.active]

    # ─────────────────────────────────────────────────
    # STORY PATHS
    # ─────────────────────────────────────────────────

    def record_key_choice(self, round_number: int, option_id: str, effects: dict = None):
        """Store the choice for a 1-based round and apply its story-path transition."""
        self.story_flags.key_choices[round_number] = option_id
        for path, delta in KEY_CHOICE_TRANSITIONS.get((round_number, option_id), {}).items():
            self.update_story_flag(path, delta)
        logger.debug(f"Key choice round {round_number}: {option_id}")

    def update_story_flag(self, path: str, delta: int):
        current = self.story_flags.path(path)
        value = max(STORY_PATH_MIN, min(STORY_PATH_MAX, current + delta))
        setattr(self.story_flags, path, value)

    def check_branch_condition(self, path: str, threshold: int) -> bool:
        return self.story_flags.path(path) >= threshold

    def key_choice(self, round_number: int):
        return self.story_flags.key_choices.get(round_number)

    def mark_special_event(self, event_id: str):
        self.story_flags.special_events.add(event_id)

    # ─────────────────────────────────────────────────
    # SNAPSHOTS
    # ─────────────────────────────────────────────────

    def summary(self) -> dict:
        return {
            "stats": self.stats.to_dict(),
            "relationship_count": len(self.relationships),
            "active_debts": len(self.active_debts()),
            "active_grudges": len(self.active_grudges()),
            "flags_count": len(self.flags),
            "history_length": len(self.history),
            "story_paths": {p: self.story_flags.path(p) for p in STORY_PATHS},
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "background": self.background,
            "stats": self.stats.to_dict(),
            "history": [history_entry_to_dict(h) for h in self.history],
            "relationships": {k: relationship_to_dict(v) for k, v in self.relationships.items()},
            "flags": copy.deepcopy(self.flags),
            "debts": [vars(d).copy() for d in self.debts],
            "grudges": [vars(g).copy() for g in self.grudges],
            "story_flags": story_flags_to_dict(self.story_flags),
            "relationship_version": self.relationship_version,
        }

    @classmethod
    def from_dict(cls, data: dict, rules=None) -> "Player":
        player = cls(
            stats=Stats.from_dict(data.get("stats", {})),
            rules=rules,
            name=data.get("name", "") or "",
            title=data.get("title", "") or "",
            background=data.get("background", "") or "",
        )
        player.history = [history_entry_from_dict(h) for h in data.get("history", [])]
        player.relationships = {
            k: relationship_from_dict(v) for k, v in (data.get("relationships") or {}).items()
        }
        player.flags = dict(data.get("flags") or {})
        player.debts = [_debt_from_dict(d) for d in data.get("debts", [])]
        player.grudges = [_grudge_from_dict(g) for g in data.get("grudges", [])]
        player.story_flags = story_flags_from_dict(data.get("story_flags"))
        player.relationship_version = data.get("relationship_version", 0)
        return player

    def clone(self) -> "Player":
        return Player.from_dict(self.to_dict(), rules=self.rules)


def _debt_from_dict(data: dict) -> Debt:
    return Debt(
        id=data.get("id", ""),
        creditor=data.get("creditor", ""),
        type=data.get("type", "favor"),
        amount=data.get("amount", 1),
        description=data.get("description", ""),
        due_round=data.get("due_round", data.get("dueRound")),
        repaid=data.get("repaid", data.get("isRepaid", False)),
    )


def _grudge_from_dict(data: dict) -> Grudge:
    return Grudge(
        id=data.get("id", ""),
        target=data.get("target", ""),
        type=data.get("type", "insult"),
        severity=data.get("severity", 1),
        description=data.get("description", ""),
        active=data.get("active", data.get("isActive", True)),
    )
