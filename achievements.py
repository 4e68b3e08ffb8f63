"""
JIANGHU Engine v1.0 — Achievements
Pure unlock evaluation. Unlocks are sticky: nothing here ever revokes.
"""

from dataclasses import replace

from models import Stats


def check_achievements(stats: Stats, achievements) -> list:
    """Return a new list with every satisfied, still-locked achievement unlocked."""
    result = []
    for ach in achievements:
        if not ach.unlocked and ach.condition(stats):
            ach = replace(ach, unlocked=True)
        result.append(ach)
    return result


def newly_unlocked(before, after) -> list:
    """Achievements unlocked in `after` that were locked (or absent) in `before`."""
    was_unlocked = {a.id for a in before if a.unlocked}
    return [a for a in after if a.unlocked and a.id not in was_unlocked]


def fresh_achievements(catalog) -> list:
    """The catalog's achievement list, all locked."""
    return [replace(a, unlocked=False) for a in catalog.achievements]
