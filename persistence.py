"""
JIANGHU Engine v1.0 — Persistence
Key-value save storage, the versioned session snapshot, and the
migration chain that brings older saves up to the current shape.

Snapshot versions:
  v0  legacy flat game state (playerStats, currentRound, ...) under its own key
  v1  {gameState, playerData, currentPhase, timestamp}, camelCase
  v2  {version, timestamp, phase, session, player, npc_states,
       npc_interactions, triggered_random_ids}
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from models import MAX_ROUNDS, now_ms

logger = logging.getLogger("jianghu.persistence")

SNAPSHOT_VERSION = 2
STATE_KEY = "jianghu-game-engine-state"
LEGACY_STATE_KEY = "jianghu-game-state"
LEGACY_TIMESTAMP_KEY = "jianghu-game-timestamp"
ALL_KEYS = (STATE_KEY, LEGACY_STATE_KEY, LEGACY_TIMESTAMP_KEY)

SAVE_VALIDITY_DAYS = 7
MS_PER_DAY = 24 * 60 * 60 * 1000


class SnapshotError(ValueError):
    """A stored snapshot could not be decoded or migrated."""


# ─────────────────────────────────────────────────────
# STORES
# ─────────────────────────────────────────────────────

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Tests and throwaway sessions."""

    def __init__(self, initial: dict = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str):
        self.data[key] = value

    def remove(self, key: str):
        self.data.pop(key, None)


class JsonFileStore:
    """One <key>.json file per key inside data_dir."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def _path(self, key: str) -> str:
        safe = key.replace("/", "-").replace("\\", "-").replace(":", "-")
        return os.path.join(self.data_dir, f"{safe}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str):
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(key)
        tmp = f"{path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def remove(self, key: str):
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)


# ─────────────────────────────────────────────────────
# SNAPSHOT
# ─────────────────────────────────────────────────────

def build_snapshot(phase: str, session: dict, player: dict, npc_states: dict = None,
                   npc_interactions: list = None, triggered_random_ids=(),
                   timestamp: int = None) -> dict:
    return {
        "version": SNAPSHOT_VERSION,
        "timestamp": timestamp if timestamp is not None else now_ms(),
        "phase": phase,
        "session": session,
        "player": player,
        "npc_states": npc_states or {},
        "npc_interactions": npc_interactions or [],
        "triggered_random_ids": sorted(triggered_random_ids),
    }


# ─────────────────────────────────────────────────────
# MIGRATION CHAIN
# ─────────────────────────────────────────────────────

_CAMEL_STATS = {"mentalState": "mental_state", "skillPotential": "skill_potential"}


def _snake_stats(stats: dict) -> dict:
    return {_CAMEL_STATS.get(k, k): v for k, v in (stats or {}).items()}


def _pairs(value) -> dict:
    """Maps serialized as [[k, v], ...] or as a plain object."""
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        out = {}
        for item in value:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                out[item[0]] = item[1]
        return out
    return {}


def detect_version(data: dict) -> int:
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot is not an object")
    if "version" in data:
        try:
            return int(data["version"])
        except (TypeError, ValueError):
            raise SnapshotError(f"Bad snapshot version: {data['version']!r}")
    if "gameState" in data:
        return 1
    if "playerStats" in data or "currentRound" in data:
        return 0
    raise SnapshotError("Unrecognized snapshot shape")


def _v0_to_v1(flat: dict) -> dict:
    """Legacy flat game state: synthesize a player from the flat stat vector."""
    return {
        "gameState": flat,
        "playerData": {"stats": dict(flat.get("playerStats") or {})},
        "currentPhase": "result" if flat.get("isGameOver") else "playing",
        "timestamp": flat.get("timestamp"),
    }


def _history_from_v1(h: dict) -> dict:
    return {
        "round": h.get("round", 0),
        "kind": h.get("type", "event"),
        "description": h.get("description", ""),
        "effects": _snake_stats(h.get("effects") or {}),
        "metadata": None,
    }


def _random_id(item) -> Optional[str]:
    if isinstance(item, dict):
        return item.get("id")
    if isinstance(item, str):
        return item
    return None


def _v1_to_v2(data: dict) -> dict:
    gs = data.get("gameState") or {}
    pdata = data.get("playerData") or {}
    stats = _snake_stats(pdata.get("stats") or gs.get("playerStats") or {})

    session = {
        "current_round": gs.get("currentRound", 0),
        "max_rounds": gs.get("maxRounds", MAX_ROUNDS),
        "questionnaire": gs.get("questionnaire"),
        "achievements": [{"id": a.get("id", ""), "unlocked": bool(a.get("unlocked", False))}
                         for a in gs.get("achievements", []) if isinstance(a, dict)],
        "event_history": [{"round": e.get("round", 0),
                           "event_id": e.get("eventId", 0),
                           "option_id": e.get("selectedOption", ""),
                           "effects": _snake_stats(e.get("effects") or {})}
                          for e in gs.get("eventHistory", []) if isinstance(e, dict)],
        "delayed_effects": [],
        "game_over": bool(gs.get("isGameOver", False)),
    }
    player = {
        "name": pdata.get("name") or "",
        "title": pdata.get("title") or "",
        "background": pdata.get("background") or "",
        "stats": stats,
        "history": [_history_from_v1(h) for h in pdata.get("history", []) if isinstance(h, dict)],
        "relationships": _pairs(pdata.get("relationships")),
        "flags": _pairs(pdata.get("flags")),
        "debts": pdata.get("debts") or [],
        "grudges": pdata.get("grudges") or [],
        "story_flags": pdata.get("storyFlags"),
    }
    random_ids = [_random_id(r) for r in gs.get("randomEvents", [])]
    return {
        "version": 2,
        "timestamp": data.get("timestamp"),
        "phase": data.get("currentPhase") or "playing",
        "session": session,
        "player": player,
        "npc_states": {},
        "npc_interactions": [],
        "triggered_random_ids": [r for r in random_ids if r],
    }


_MIGRATIONS = {0: _v0_to_v1, 1: _v1_to_v2}


def upgrade_snapshot(data: dict) -> dict:
    """Walk the migration chain up to SNAPSHOT_VERSION."""
    version = detect_version(data)
    if version > SNAPSHOT_VERSION:
        raise SnapshotError(f"Snapshot version {version} is newer than {SNAPSHOT_VERSION}")
    try:
        while version < SNAPSHOT_VERSION:
            data = _MIGRATIONS[version](data)
            logger.info(f"Snapshot migrated v{version} -> v{version + 1}")
            version += 1
    except (AttributeError, TypeError) as e:
        raise SnapshotError(f"Snapshot migration failed at v{version}: {e}")
    for key in ("session", "player"):
        if not isinstance(data.get(key), dict):
            raise SnapshotError(f"Snapshot missing '{key}'")
    return data


# ─────────────────────────────────────────────────────
# SAVE MANAGER
# ─────────────────────────────────────────────────────

def _iso_to_ms(value: str) -> int:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _is_timestamp(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class SaveManager:
    """Reads and writes snapshots through a KeyValueStore."""

    def __init__(self, store: KeyValueStore = None, clock: Callable[[], int] = None,
                 validity_days: int = SAVE_VALIDITY_DAYS):
        self.store = store if store is not None else MemoryStore()
        self.clock = clock or now_ms
        self.validity_days = validity_days

    def is_fresh(self, timestamp_ms) -> bool:
        if not _is_timestamp(timestamp_ms):
            return False
        age_days = (self.clock() - timestamp_ms) / MS_PER_DAY
        return age_days <= self.validity_days

    def save(self, snapshot: dict):
        """Write a v2 snapshot. Raises OSError / TypeError on failure."""
        payload = dict(snapshot)
        payload["version"] = SNAPSHOT_VERSION
        payload.setdefault("timestamp", self.clock())
        self.store.set(STATE_KEY, json.dumps(payload, ensure_ascii=False))
        logger.debug(f"Snapshot saved (round {payload.get('session', {}).get('current_round')})")

    def _read_raw(self):
        """(data, timestamp_ms) from the current key, else the legacy keys."""
        raw = self.store.get(STATE_KEY)
        if raw is not None:
            data = self._decode(raw)
            timestamp = data.get("timestamp")
            if timestamp is not None and not _is_timestamp(timestamp):
                raise SnapshotError(f"Bad snapshot timestamp: {timestamp!r}")
            return data, timestamp

        raw = self.store.get(LEGACY_STATE_KEY)
        if raw is None:
            return None, None
        data = self._decode(raw)
        stamp = self.store.get(LEGACY_TIMESTAMP_KEY)
        try:
            timestamp = _iso_to_ms(stamp) if stamp else None
        except ValueError as e:
            raise SnapshotError(f"Bad legacy timestamp {stamp!r}: {e}")
        if isinstance(data, dict) and timestamp is not None:
            data = {**data, "timestamp": timestamp}
        return data, timestamp

    def _decode(self, raw: str) -> dict:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise SnapshotError(f"Snapshot is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise SnapshotError("Snapshot is not an object")
        return data

    def load(self) -> Optional[dict]:
        """
        The stored snapshot upgraded to v2, or None when there is no save
        or it is older than the validity window. Raises SnapshotError.
        """
        data, timestamp = self._read_raw()
        if data is None:
            return None
        if not self.is_fresh(timestamp):
            logger.info("Save found but expired")
            return None
        return upgrade_snapshot(data)

    def has_save(self) -> bool:
        try:
            return self.load() is not None
        except SnapshotError as e:
            logger.warning(f"Unreadable save: {e}")
            return False

    def clear(self):
        for key in ALL_KEYS:
            self.store.remove(key)
