"""
JIANGHU Engine v1.0 — Event Selection
Decides which event a round presents and draws random events.

Precedence for the main event of a round:
  1. Branch event  (story-path conditions)
  2. NPC event     (stats / flags / NPC relationship)
  3. Scripted event (id = round + 1)

Selection is evaluated fresh on every call; nothing is cached.
"""

import logging

from catalog import Catalog, LIU_ID, default_catalog
from dice import pick_one
from models import EventSource

logger = logging.getLogger("jianghu.events")


class EventCatalog:
    """Selection over an immutable Catalog plus session-local extra events."""

    def __init__(self, catalog: Catalog = None):
        self.catalog = catalog or default_catalog()
        self._extra_events: dict = {}

    # ─────────────────────────────────────────────────
    # LOOKUP
    # ─────────────────────────────────────────────────

    def get_event(self, event_id: int):
        if event_id in self._extra_events:
            return self._extra_events[event_id]
        for event in self.catalog.scripted_events:
            if event.id == event_id:
                return event
        if event_id in self.catalog.npc_events:
            return self.catalog.npc_events[event_id]
        for event in self.catalog.branch_events.values():
            if event.id == event_id:
                return event
        return None

    def register_event(self, event):
        """Add or override an event for this session only."""
        self._extra_events[event.id] = event
        logger.debug(f"Registered event {event.id}: {event.title}")

    def all_events(self) -> list:
        ids = [e.id for e in self.catalog.scripted_events]
        ids += [e.id for e in self._extra_events.values() if e.id not in ids]
        return [self.get_event(i) for i in ids]

    def clear_registered(self):
        self._extra_events = {}

    # ─────────────────────────────────────────────────
    # SELECTION
    # ─────────────────────────────────────────────────

    def scripted_event(self, round_index: int):
        return self.get_event(round_index + 1)

    def branch_event(self, round_index: int, player):
        justice = player.story_flags.justice
        if round_index == 5:
            ok = justice >= 4 and player.key_choice(2) in ("A", "C")
        elif round_index == 8:
            ok = justice >= 5 and player.key_choice(8) == "A"
        elif round_index == 9:
            ok = justice >= 6
        else:
            return None
        if not ok:
            logger.debug(f"Branch check round {round_index}: justice={justice}, not met")
            return None
        return self.catalog.branch_events.get(round_index)

    def npc_event(self, round_index: int, player):
        stats = player.stats
        liu = player.relationship_value(LIU_ID)
        event_id = None
        if round_index == 3 and stats.network >= 2:
            event_id = 1001
        elif round_index == 5 and (stats.fame >= 6 or stats.network >= 5) and liu >= 3:
            event_id = 1002
        elif round_index == 8 and player.has_flag("owed_help_npc004") and liu <= 2:
            event_id = 1003
        if event_id is None:
            return None
        return self.catalog.npc_events.get(event_id)

    def select_event(self, round_index: int, player):
        """Return (event, source) for a round. event is None past the last round."""
        event = self.branch_event(round_index, player)
        if event is not None:
            logger.info(f"Branch event round {round_index}: {event.title}")
            return event, EventSource.BRANCH
        event = self.npc_event(round_index, player)
        if event is not None:
            logger.info(f"NPC event round {round_index}: {event.title}")
            return event, EventSource.NPC
        event = self.scripted_event(round_index)
        if event is None:
            return None, None
        return event, EventSource.SCRIPTED

    # ─────────────────────────────────────────────────
    # RANDOM EVENTS
    # ─────────────────────────────────────────────────

    def draw_random_event(self, triggered_ids, rng=None):
        """Uniform draw from the pool minus already-triggered ids."""
        remaining = [e for e in self.catalog.random_pool if e.id not in triggered_ids]
        event, audit = pick_one(remaining, "random_event", rng)
        if event is None:
            logger.debug("Random pool exhausted")
        return event

    def npc_random_event(self, npc_id: str, rng=None):
        pool = self.catalog.npc_random_events.get(npc_id, ())
        event, audit = pick_one(pool, f"npc_random:{npc_id}", rng)
        return event

    def random_pool_size(self) -> int:
        return len(self.catalog.random_pool)
