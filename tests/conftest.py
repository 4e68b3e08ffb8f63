"""
Global pytest configuration and shared fixtures.

Provides common test infrastructure for all test suites including:
- Deterministic RNG stand-ins for dice gates and pool draws
- A controllable millisecond clock for save expiry
- Player / session / subsystem factories wired the way GameLoop wires them
- A GameLoop backed by an in-memory store
"""

import pytest

from achievements import fresh_achievements
from agenda import AgendaEngine
from catalog import default_catalog
from event_catalog import EventCatalog
from event_system import EventSystem
from game_loop import GameLoop
from models import SessionState, Stats
from npc_manager import NPCManager
from persistence import MemoryStore
from player import Player
from round_manager import RoundManager
from rules import RulesEngine

DAY_MS = 24 * 60 * 60 * 1000
START_MS = 1_790_000_000_000

STANDARD_ANSWERS = {
    "background": "family",
    "personality": "resilient",
    "ambition": "fame",
    "age": "18-22",
    "talent": "martial",
}


class FixedRng:
    """randint always lands on `value`, clamped into the requested range."""

    def __init__(self, value: int):
        self.value = value
        self.calls = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return max(a, min(b, self.value))


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance_days(self, days: float):
        self.now += int(days * DAY_MS)


# ============================================================================
# RNG / Clock
# ============================================================================


@pytest.fixture
def never_rng():
    """d100 always rolls 100: no random event gate ever passes."""
    return FixedRng(100)


@pytest.fixture
def always_rng():
    """d100 always rolls 1: every gate passes, draws take the first item."""
    return FixedRng(1)


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Engine Pieces
# ============================================================================


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def rules():
    return RulesEngine()


@pytest.fixture
def player(rules):
    return Player(Stats(), rules=rules, name="测试侠客")


@pytest.fixture
def session(catalog):
    return SessionState(achievements=fresh_achievements(catalog))


@pytest.fixture
def events(catalog):
    return EventCatalog(catalog)


@pytest.fixture
def event_system(events):
    return EventSystem(events)


@pytest.fixture
def round_manager(player, session, events, event_system, never_rng):
    return RoundManager(player, session, events, event_system, rng=never_rng)


@pytest.fixture
def npc_manager(player, session, catalog):
    return NPCManager(player, session, catalog.npcs)


@pytest.fixture
def agenda_engine(player, session):
    return AgendaEngine(player, session)


# ============================================================================
# Game Loop
# ============================================================================


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def game(store, never_rng, clock):
    """A GameLoop with no random events and an in-memory save store."""
    return GameLoop(store=store, rng=never_rng, clock=clock)


@pytest.fixture
def playing_game(game):
    """A GameLoop past the questionnaire, waiting on round 0."""
    assert game.start_new_game()
    assert game.complete_questionnaire(STANDARD_ANSWERS)
    return game
