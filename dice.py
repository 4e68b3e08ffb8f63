"""
JIANGHU Engine v1.0 — Dice Roller
Full audit trail on every roll. Random-event gates and pool draws go
through here so every chance outcome can be traced in the log.
"""

import logging
import random
import re

logger = logging.getLogger("jianghu.dice")

_DICE_RE = re.compile(r'(\d+)d(\d+)([+-]\d+)?')


def _rng(rng: random.Random = None):
    # Module-level random shares the Random API
    return rng if rng is not None else random


def roll_dice(expression: str, label: str = "", rng: random.Random = None) -> dict:
    """
    Roll a dice expression like '2d6', '1d8+2', '1d100'.
    Returns dict with full audit trail.
    """
    expr = expression.strip().lower()

    # Parse NdM+K
    match = _DICE_RE.match(expr)
    if not match:
        return {"error": f"Invalid dice expression: {expression}"}

    n = int(match.group(1))
    m = int(match.group(2))
    k = int(match.group(3)) if match.group(3) else 0
    if n < 1 or m < 1:
        return {"error": f"Invalid dice expression: {expression}"}

    source = _rng(rng)
    individual = [source.randint(1, m) for _ in range(n)]
    total = sum(individual) + k

    result = {
        "expression": expression,
        "dice": individual,
        "modifier": k,
        "total": total,
        "label": label,
    }
    logger.debug(f"Roll {expression} [{label}] -> {individual} {k:+d} = {total}")
    return result


def roll_d100(label: str = "", rng: random.Random = None) -> dict:
    """Roll 1d100 with audit."""
    return roll_dice("1d100", label, rng)


def percent_gate(chance: float, label: str = "", rng: random.Random = None) -> dict:
    """
    Percentage gate. Passes when 1d100 <= chance * 100.
    chance is clamped to [0, 1]; a chance of 0 never passes.
    """
    chance = max(0.0, min(1.0, chance))
    roll = roll_d100(label, rng)
    threshold = int(round(chance * 100))
    passed = threshold > 0 and roll["total"] <= threshold
    return {
        "roll": roll["total"],
        "chance": chance,
        "threshold": threshold,
        "passed": passed,
        "label": label,
    }


def pick_one(items, label: str = "", rng: random.Random = None):
    """
    Uniformly pick one item from a sequence.
    Returns (item, audit). item is None when the sequence is empty.
    """
    items = list(items)
    if not items:
        return None, {"label": label, "pool_size": 0, "index": None}
    roll = roll_dice(f"1d{len(items)}", label, rng)
    index = roll["total"] - 1
    return items[index], {"label": label, "pool_size": len(items),
                          "index": index, "roll": roll}
