"""
JIANGHU Engine v1.0 — Stat Rules
Every stat change goes through here. Clamp, then cascade.

Two clamp paths:
  - RulesEngine.apply_changes: configured limits + active rule cascade
  - clamp_stats: minimal legacy clamp, no rules, always available
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from models import Stats, ALL_STATS, ENERGY_MAX

logger = logging.getLogger("jianghu.rules")


# ─────────────────────────────────────────────────────
# LIMITS
# ─────────────────────────────────────────────────────

DEFAULT_MIN = {
    "martial": 0, "fame": -50, "network": 0, "energy": 0, "virtue": -100,
    "mental_state": 0, "skill_potential": 0, "luck": 0, "reputation": -100,
}
DEFAULT_MAX = {k: 100 for k in ALL_STATS}
DEFAULT_MAX["energy"] = ENERGY_MAX

ALLOW_NEGATIVE = ("virtue", "fame", "reputation")

STAT_DISPLAY_NAMES = {
    "martial": "武艺",
    "fame": "威望",
    "network": "人脉",
    "energy": "内力",
    "virtue": "侠义值",
    "mental_state": "心理状态",
    "skill_potential": "技能潜力",
    "luck": "运气",
    "reputation": "名声",
}


@dataclass
class StatLimits:
    min: dict = field(default_factory=lambda: dict(DEFAULT_MIN))
    max: dict = field(default_factory=lambda: dict(DEFAULT_MAX))
    allow_negative: tuple = ALLOW_NEGATIVE

    def clamp(self, key: str, value: int) -> int:
        lo = self.min.get(key, 0)
        hi = self.max.get(key, 100)
        if key not in self.allow_negative and value < 0:
            return lo
        return max(lo, min(hi, value))


# ─────────────────────────────────────────────────────
# RULES
# ─────────────────────────────────────────────────────

@dataclass
class StatRule:
    name: str
    description: str
    condition: Callable[[Stats], bool]
    effect: Callable[[Stats], dict]
    priority: int
    active: bool = True


@dataclass
class ValidationReport:
    valid: bool
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


MENTAL_HEALTH_RULE = "mental_health_impact"
MENTAL_HEALTH_FLOOR = 20


def _virtue_effect(stats: Stats) -> dict:
    if stats.virtue > 0:
        return {"network": 2, "mental_state": 5}
    return {"network": -1, "mental_state": -5}


def default_rules() -> list:
    return [
        StatRule(
            name="energy_recovery",
            description="每轮自动恢复1点内力",
            condition=lambda s: s.energy < ENERGY_MAX - 1,
            effect=lambda s: {"energy": 1},
            priority=1,
            # Round start already restores energy
            active=False,
        ),
        StatRule(
            name=MENTAL_HEALTH_RULE,
            description="心理健康低于20时，其他属性增长减半",
            condition=lambda s: s.mental_state < MENTAL_HEALTH_FLOOR,
            effect=lambda s: {},
            priority=2,
        ),
        StatRule(
            name="fame_threshold",
            description="声望达到80时，获得威望加成",
            condition=lambda s: s.fame >= 80,
            effect=lambda s: {"reputation": 5},
            priority=3,
        ),
        StatRule(
            name="virtue_impact",
            description="侠义值极高或极低时影响关系",
            condition=lambda s: abs(s.virtue) >= 50,
            effect=_virtue_effect,
            priority=4,
        ),
    ]


def default_stats() -> Stats:
    return Stats()


# ─────────────────────────────────────────────────────
# MINIMAL CLAMP
# ─────────────────────────────────────────────────────

def clamp_stats(stats: Stats, delta: dict) -> Stats:
    """
    Legacy clamp. energy stays in [0, ENERGY_MAX], virtue may go negative,
    every other stat floors at 0. No rules, no ceilings.
    """
    values = {}
    for key, change in (delta or {}).items():
        if key not in ALL_STATS or not change:
            continue
        value = getattr(stats, key) + change
        if key == "energy":
            value = max(0, min(ENERGY_MAX, value))
        elif key != "virtue":
            value = max(0, value)
        values[key] = value
    return stats.with_values(**values)


# ─────────────────────────────────────────────────────
# RULES ENGINE
# ─────────────────────────────────────────────────────

class RulesEngine:
    """Limits and a priority-ordered rule list. Stateless between calls."""

    def __init__(self, limits: StatLimits = None):
        self.limits = limits or StatLimits()
        self._rules: list[StatRule] = []
        for rule in default_rules():
            self.add_rule(rule)

    # ── Registry ──

    def add_rule(self, rule: StatRule):
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority)

    def remove_rule(self, name: str) -> bool:
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[i]
                return True
        return False

    def set_rule_active(self, name: str, active: bool) -> bool:
        rule = self.get_rule(name)
        if rule is None:
            return False
        rule.active = active
        return True

    def get_rule(self, name: str):
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def rules(self) -> list:
        return list(self._rules)

    def reset_to_default_rules(self):
        self._rules = []
        for rule in default_rules():
            self.add_rule(rule)

    def set_limits(self, min: dict = None, max: dict = None, allow_negative=None):
        if min:
            self.limits.min.update(min)
        if max:
            self.limits.max.update(max)
        if allow_negative is not None:
            self.limits.allow_negative = tuple(allow_negative)

    def default_stats(self) -> Stats:
        return default_stats()

    # ── Application ──

    def _mental_halving(self, stats: Stats) -> bool:
        rule = self.get_rule(MENTAL_HEALTH_RULE)
        return bool(rule and rule.active and stats.mental_state < MENTAL_HEALTH_FLOOR)

    def _apply_delta(self, stats: Stats, delta: dict) -> Stats:
        values = {}
        for key, change in delta.items():
            if key not in ALL_STATS or change is None:
                continue
            values[key] = self.limits.clamp(key, getattr(stats, key) + change)
        return stats.with_values(**values)

    def apply_changes(self, stats: Stats, delta: dict, context: dict = None) -> Stats:
        """
        Base apply, then cascade. Rule predicates all see the post-base stats;
        rule effects never retrigger evaluation.
        """
        halve = self._mental_halving(stats)
        base = {}
        for key, change in (delta or {}).items():
            if key not in ALL_STATS or change is None:
                continue
            if halve and change > 0:
                change = change // 2
            base[key] = change
        new_stats = self._apply_delta(stats, base)

        fired = [r for r in self._rules if r.active and r.condition(new_stats)]
        for rule in fired:
            effect = rule.effect(new_stats)
            if effect:
                new_stats = self._apply_delta(new_stats, effect)
        if fired:
            names = ", ".join(r.name for r in fired)
            logger.debug(f"Rules fired: {names} (context={context})")
        return new_stats

    # ── Diagnostics ──

    def validate_stats(self, stats: Stats) -> ValidationReport:
        errors = []
        warnings = []
        for key in ALL_STATS:
            value = getattr(stats, key)
            lo = self.limits.min.get(key)
            hi = self.limits.max.get(key)
            if lo is not None and value < lo:
                if key in self.limits.allow_negative:
                    warnings.append(f"{key} 低于建议值 {lo}")
                else:
                    errors.append(f"{key} 低于最小值 {lo}")
            if hi is not None and value > hi:
                warnings.append(f"{key} 超过最大值 {hi}")
        return ValidationReport(valid=not errors, errors=errors, warnings=warnings)


def score_stats(stats: Stats) -> dict:
    details = {
        "martial": stats.martial * 10,
        "energy": stats.energy * 8,
        "fame": stats.fame * 7,
        "network": stats.network * 9,
        "reputation": stats.reputation * 6,
        "virtue": abs(stats.virtue) * 5,
        "mental_state": stats.mental_state * 4,
        "skill_potential": stats.skill_potential * 3,
        "luck": stats.luck * 2,
    }
    combat = details["martial"] + details["energy"]
    social = details["fame"] + details["network"] + details["reputation"]
    survival = (details["virtue"] + details["mental_state"]
                + details["skill_potential"] + details["luck"])
    return {
        "total": combat + social + survival,
        "combat": combat,
        "social": social,
        "survival": survival,
        "details": details,
    }


def stats_advice(stats: Stats) -> list:
    advice = []
    if stats.martial < 10:
        advice.append("武艺较低，建议多参与战斗相关的训练")
    if stats.energy < 3:
        advice.append("内力不足，需要休息调息")
    if stats.fame < 5:
        advice.append("威望不高，可以考虑多参与江湖事务")
    if stats.network < 5:
        advice.append("人脉薄弱，建议多结交江湖朋友")
    if stats.virtue < -20:
        advice.append("侠义值过低，可能招致非议")
    if stats.mental_state < 30:
        advice.append("心理状态不佳，需要调节心情")
    if stats.martial > 20 and stats.fame < 10:
        advice.append("武艺高强但威望不足，可以考虑扬名立万")
    if stats.network > 20 and stats.virtue > 30:
        advice.append("人脉广阔且德行高尚，适合成为领袖人物")
    return advice


def compare_stats(old: Stats, new: Stats) -> dict:
    improved, declined, unchanged = [], [], []
    for key in ALL_STATS:
        name = STAT_DISPLAY_NAMES[key]
        diff = getattr(new, key) - getattr(old, key)
        if diff > 0:
            improved.append(f"{name} +{diff}")
        elif diff < 0:
            declined.append(f"{name} {diff}")
        else:
            unchanged.append(name)

    if improved and declined:
        summary = f"{'、'.join(improved)}，但{'、'.join(declined)}"
    elif improved:
        summary = "、".join(improved)
    elif declined:
        summary = "、".join(declined)
    else:
        summary = "属性无明显变化"
    return {"improved": improved, "declined": declined,
            "unchanged": unchanged, "summary": summary}
