"""
JIANGHU Engine v1.0 — Game Loop
The outer loop. Owns the session, drives the round manager, NPC and agenda
systems, and persistence. The web layer talks only to this object.

State machine:
  START          -> No session. Waiting for new game / continue.
  QUESTIONNAIRE  -> Player answers the background questionnaire.
  PLAYING        -> Rounds 0..max_rounds-1 (see round_manager).
  RESULT         -> Game over. Final stats and achievements.

Public operations return booleans and never raise. Failure detail goes to
last_error, the action log and the jianghu.loop logger.
"""

import logging
from enum import Enum
from datetime import datetime

from achievements import fresh_achievements
from agenda import AgendaEngine
from catalog import default_catalog, LIU_ID
from event_catalog import EventCatalog
from event_system import EventSystem
from models import (
    SessionState, session_to_dict, session_from_dict,
    event_to_dict, random_event_to_dict, achievement_to_dict, relationship_to_dict,
    STORY_PATHS,
)
from npc_manager import NPCManager, parse_saved_states
from persistence import SaveManager, SnapshotError, build_snapshot, upgrade_snapshot
from player import Player
from round_manager import RoundManager, RoundInProgressError, NoCurrentEventError
from rules import RulesEngine, score_stats, stats_advice

logger = logging.getLogger("jianghu.loop")

DEFAULT_PLAYER_NAME = "江湖小白"

# (event id, option id) -> justice bonus. Event 8 A: rescuing the villagers.
JUSTICE_BONUS_CHOICES = {(8, "A"): 2}


def _parse_random_ids(value) -> set:
    if value is None:
        return set()
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"triggered_random_ids must be a list of ids, got {value!r}")
    return set(value)


class GamePhase(str, Enum):
    START = "start"
    QUESTIONNAIRE = "questionnaire"
    PLAYING = "playing"
    RESULT = "result"


class GameLoop:
    """
    Central game state machine. Content comes from a Catalog, saves go
    through a KeyValueStore; both are injectable.
    """

    def __init__(self, catalog=None, store=None, rng=None, clock=None,
                 limits=None, npc_config=None, random_config=None):
        self.catalog = catalog or default_catalog()
        self.rng = rng
        self.rules = RulesEngine(limits)
        self.events = EventCatalog(self.catalog)
        self.event_system = EventSystem(self.events)
        self.saves = SaveManager(store, clock)

        self.session = SessionState(achievements=fresh_achievements(self.catalog))
        self.player = Player(self.rules.default_stats(), rules=self.rules,
                             name=DEFAULT_PLAYER_NAME)
        self.rounds = RoundManager(self.player, self.session, self.events,
                                   self.event_system, random_config, rng)
        self.npc_manager = NPCManager(self.player, self.session, self.catalog.npcs, npc_config)
        self.agendas = AgendaEngine(self.player, self.session)
        self._register_agendas()
        self.event_system.hooks.register("after_complete", self._apply_npc_consequences)

        self.phase: GamePhase = GamePhase.START
        self.last_error: str = None
        self.last_round_result = None
        self.last_agenda_results: list = []
        self.narration_buffer: list[dict] = []  # [{type, text, timestamp}]
        self.action_log: list[dict] = []        # Mechanical log entries

        # Callbacks — the web layer registers these to push updates
        self._on_phase_change = None
        self._on_state_update = None
        self._on_narration = None
        self._on_log_entry = None

    # ─────────────────────────────────────────────────
    # WIRING
    # ─────────────────────────────────────────────────

    def _register_agendas(self):
        for npc in self.catalog.npcs:
            self.agendas.register_agenda(npc.id, npc.agenda)

    def _bind_session(self, mirror: bool = True):
        """Point every subsystem at the current player/session."""
        self.rounds.bind(self.player, self.session)
        self.npc_manager.bind(self.player, self.session, mirror)
        self.agendas.bind(self.player, self.session)
        self._register_agendas()

    def _apply_npc_consequences(self, ctx):
        """after_complete hook: keep NPC state in step with the chosen option."""
        event, option = ctx.event, ctx.option
        for effect in option.npc_effects:
            self.npc_manager.apply_event_effect(effect.npc_id, effect.relationship_change,
                                                effect.reason)
        if not event.is_npc_event:
            return
        consequence = self.catalog.npc_event_consequences.get((event.id, option.id))
        if consequence is None:
            return
        delta, reason, flag = consequence
        if flag:
            self.player.set_flag(flag, True)
        self.npc_manager.update_relationship(LIU_ID, delta, reason)
        self.player.mark_special_event(f"npc_event_{event.id}_{option.id}")
        self._log_action("NPC", f"{reason} ({delta:+d})")

    # ─────────────────────────────────────────────────
    # PHASE TRANSITIONS
    # ─────────────────────────────────────────────────

    def _set_phase(self, phase: GamePhase):
        old = self.phase
        self.phase = phase
        if old != phase:
            logger.info(f"Phase {old.value} -> {phase.value}")
            if self._on_phase_change:
                self._emit("phase_change", self._on_phase_change, phase, self._build_phase_data())

    def _emit(self, name: str, callback, *args):
        """Call a presentation callback; a failing subscriber is logged and skipped."""
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Callback {name} failed")

    def _build_phase_data(self) -> dict:
        """Data payload for the current phase."""
        data = {
            "phase": self.phase.value,
            "round": self.session.current_round,
            "max_rounds": self.session.max_rounds,
        }
        if self.phase == GamePhase.QUESTIONNAIRE:
            data["question_count"] = len(self.catalog.questionnaire)
        elif self.phase == GamePhase.PLAYING:
            event = self.rounds.current_event
            data["event"] = event_to_dict(event) if event else None
        elif self.phase == GamePhase.RESULT:
            data["score"] = score_stats(self.player.stats)
            data["achievements"] = [a.name for a in self.session.unlocked_achievements()]
        return data

    def _fail(self, message: str) -> bool:
        self.last_error = message
        logger.info(f"Rejected: {message}")
        self._log_action("ERROR", message)
        return False

    def _ok(self):
        self.last_error = None
        if self._on_state_update:
            self._emit("state_update", self._on_state_update, self.get_full_state())
        return True

    def _narrate(self, kind: str, text: str):
        if not text:
            return
        self.narration_buffer.append({
            "type": kind,
            "text": text,
            "timestamp": datetime.now().isoformat(),
        })
        if self._on_narration:
            self._emit("narration", self._on_narration, kind, text)

    # ─────────────────────────────────────────────────
    # SESSION LIFECYCLE
    # ─────────────────────────────────────────────────

    def start_new_game(self) -> bool:
        """Fresh player and session; waits for the questionnaire."""
        self.session = SessionState(achievements=fresh_achievements(self.catalog))
        self.player = Player(self.rules.default_stats(), rules=self.rules,
                             name=DEFAULT_PLAYER_NAME)
        self.rounds.reset()
        self.events.clear_registered()
        self._bind_session(mirror=True)
        self.narration_buffer = []
        self.last_round_result = None
        self.last_agenda_results = []
        self._set_phase(GamePhase.QUESTIONNAIRE)
        self._log_action("SESSION", "新的江湖之旅开始")
        return self._ok()

    def restart_game(self) -> bool:
        return self.start_new_game()

    def complete_questionnaire(self, answers: dict) -> bool:
        """
        Initial stats are the defaults with each chosen option applied
        through the rules engine in question order. Any unknown or missing
        answer rejects the whole questionnaire.
        """
        if self.phase != GamePhase.QUESTIONNAIRE:
            return self._fail(f"当前阶段无法填写问卷: {self.phase.value}")
        answers = dict(answers or {})

        known = {q.id for q in self.catalog.questionnaire}
        unknown = sorted(set(answers) - known)
        if unknown:
            return self._fail(f"未知的问卷问题: {', '.join(unknown)}")

        stats = self.rules.default_stats()
        chosen = {}
        for question in self.catalog.questionnaire:
            option = question.option(answers.get(question.id))
            if option is None:
                return self._fail(f"无效的问卷答案: {question.id}={answers.get(question.id)!r}")
            chosen[question.id] = option
            stats = self.rules.apply_changes(stats, option.effects)

        self.player.stats = stats
        if "background" in chosen:
            self.player.background = chosen["background"].label
        self.session.questionnaire = answers
        self.session.achievements = fresh_achievements(self.catalog)
        self._log_action("QUESTIONNAIRE",
                         " / ".join(opt.label for opt in chosen.values()))

        try:
            result = self.rounds.start_new_game()
        except RoundInProgressError as e:
            return self._fail(str(e))
        self.last_round_result = result
        self._set_phase(GamePhase.PLAYING)
        self._announce_round(result)
        self._auto_save()
        return self._ok()

    def continue_game(self, saved_state: dict) -> bool:
        """Restore a session from a snapshot of any supported version."""
        # Decode everything before touching live state.
        try:
            data = upgrade_snapshot(saved_state)
            session = session_from_dict(data["session"], self.catalog.achievements)
            player = Player.from_dict(data["player"], rules=self.rules)
            npc_states, npc_interactions = parse_saved_states(data.get("npc_states"),
                                                              data.get("npc_interactions"))
            random_ids = _parse_random_ids(data.get("triggered_random_ids"))
        except (SnapshotError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Snapshot rejected: {e}")
            return self._fail(f"存档数据无效: {e}")

        self._fill_achievements(session)
        self.rounds.reset()
        self.session = session
        self.player = player
        self._bind_session(mirror=False)
        self.npc_manager.apply_saved_states(npc_states, npc_interactions)
        self.rounds.triggered_random_ids = random_ids
        self.narration_buffer = []
        self.last_round_result = None

        if session.game_over:
            phase = GamePhase.RESULT
        elif session.has_questionnaire():
            phase = GamePhase.PLAYING
            self._restore_current_event()
        else:
            phase = GamePhase.QUESTIONNAIRE
        self._set_phase(phase)
        self._log_action("SESSION", f"读取存档：第{session.current_round + 1}轮")
        return self._ok()

    def _fill_achievements(self, session: SessionState):
        """Older saves may lack some achievements; add them locked."""
        have = {a.id for a in session.achievements}
        for ach in fresh_achievements(self.catalog):
            if ach.id not in have:
                session.achievements.append(ach)

    def _restore_current_event(self):
        r = self.session.current_round
        done = [h for h in self.session.event_history if h.round == r]
        if done:
            self.rounds.current_event = self.events.get_event(done[-1].event_id)
            self.rounds.event_source = None
            self.rounds.resolved = True
        else:
            self.rounds.current_event, self.rounds.event_source = \
                self.events.select_event(r, self.player)
            self.rounds.resolved = False

    # ─────────────────────────────────────────────────
    # ROUND ACTIONS
    # ─────────────────────────────────────────────────

    def execute_event_choice(self, option_id: str) -> bool:
        if self.phase != GamePhase.PLAYING:
            return self._fail(f"当前阶段无法选择: {self.phase.value}")
        event = self.rounds.current_event
        if event is None or self.rounds.resolved:
            return self._fail("当前没有待处理的事件")

        try:
            result = self.rounds.execute_current_event(option_id)
        except (RoundInProgressError, NoCurrentEventError) as e:
            return self._fail(str(e))
        self.last_round_result = result

        outcome = result.event_result
        if not outcome.success:
            self._narrate("SYSTEM", outcome.narration)
            return self._fail(outcome.narration)

        if event.is_scripted_event:
            self._record_key_choice(event, event.option(option_id))

        self._narrate("EVENT", outcome.narration)
        self._log_action("EVENT", f"{event.title} -> {option_id}")
        if result.achievements:
            self._log_action("ACHIEVEMENT", ", ".join(result.achievements))
        for random_event in result.random_events:
            self._narrate("RANDOM", f"{random_event.title}：{random_event.description}")
            self._log_action("RANDOM", random_event.title)

        self._post_round_updates()
        self._auto_save()
        return self._ok()

    def _record_key_choice(self, event, option):
        """Key choices and justice bonuses count only for resolved scripted events."""
        self.player.record_key_choice(self.session.current_round + 1, option.id, option.effects)
        bonus = JUSTICE_BONUS_CHOICES.get((event.id, option.id))
        if bonus:
            self.player.update_story_flag("justice", bonus)
            self._log_action("STORY", f"正义路线 {bonus:+d}：{option.description}")

    def _post_round_updates(self):
        """NPC decay/mood/triggers, then agenda proposals."""
        r = self.session.current_round
        for npc_id, trigger in self.npc_manager.process_round_update(r):
            self._log_action("NPC_TRIGGER", f"{npc_id}: {trigger.kind}")

        results = []
        for npc in self.catalog.npcs:
            state = self.npc_manager.get_state(npc.id)
            if state is None:
                continue
            results.extend(self.agendas.process_agenda_updates(npc.id, npc.agenda,
                                                               state.relationship))
        self.last_agenda_results = results
        for res in results:
            self._log_action("AGENDA", res.narrative)

    def acknowledge_random_events(self) -> bool:
        if self.phase != GamePhase.PLAYING:
            return self._fail(f"当前阶段无法确认随机事件: {self.phase.value}")
        try:
            applied = self.rounds.apply_random_event_effects()
        except RoundInProgressError as e:
            return self._fail(str(e))
        for event in applied:
            self._log_action("RANDOM_APPLIED", f"{event.title} {event.effects}")
        if applied:
            self._auto_save()
        return self._ok()

    def next_round(self) -> bool:
        if self.phase != GamePhase.PLAYING:
            return self._fail(f"当前阶段无法进入下一轮: {self.phase.value}")
        if self.rounds.current_event is not None and not self.rounds.resolved:
            return self._fail("当前事件尚未完成")
        try:
            result = self.rounds.next_round()
        except RoundInProgressError as e:
            return self._fail(str(e))
        self.last_round_result = result

        if result.is_game_over:
            self._auto_save()
            self._set_phase(GamePhase.RESULT)
            self._log_action("SESSION", f"江湖之旅结束，共{self.session.current_round}轮")
            self._narrate("SYSTEM", "你的江湖之旅告一段落。")
            return self._ok()

        self._announce_round(result)
        self._auto_save()
        return self._ok()

    def _announce_round(self, result):
        r = result.round
        if result.main_event is not None:
            self._log_action("ROUND", f"第{r + 1}轮：{result.main_event.title}"
                             f" [{result.event_source.value if result.event_source else '-'}]")
            self._narrate("EVENT", f"{result.main_event.title}：{result.main_event.description}")
        for effect_id in result.delayed_effects_triggered:
            self._log_action("DELAYED", effect_id)

    # ─────────────────────────────────────────────────
    # NPC OPERATIONS
    # ─────────────────────────────────────────────────

    def update_npc_relationship(self, npc_id: str, delta: int, reason: str = "") -> bool:
        if not self.npc_manager.update_relationship(npc_id, delta, reason):
            return self._fail(f"未知的NPC: {npc_id}")
        self._log_action("NPC", f"{npc_id} {delta:+d} {reason}".strip())
        self._auto_save()
        return self._ok()

    def can_interact_with_npc(self, npc_id: str) -> bool:
        return self.npc_manager.can_interact(npc_id)

    def execute_npc_decision(self, npc_id: str) -> bool:
        if self.phase != GamePhase.PLAYING:
            return self._fail(f"当前阶段无法与NPC互动: {self.phase.value}")
        if self.npc_manager.get_npc(npc_id) is None:
            return self._fail(f"未知的NPC: {npc_id}")
        decision = self.npc_manager.make_npc_decision(npc_id)
        if decision is None:
            return self._fail(f"{npc_id} 现在无法互动")
        self.npc_manager.execute_npc_decision(decision, npc_id)
        unlocked = self.event_system.evaluate_achievements(
            self.player, self.session, self.session.current_round)
        self._narrate("NPC", decision.narrative)
        self._log_action("NPC", f"{npc_id}: {decision.action_id}")
        if unlocked:
            self._log_action("ACHIEVEMENT", ", ".join(a.name for a in unlocked))
        self._auto_save()
        return self._ok()

    def npc_random_event(self, npc_id: str):
        """A random event from this NPC's pool as a dict, or None."""
        event = self.events.npc_random_event(npc_id, self.rng)
        return random_event_to_dict(event) if event else None

    # ─────────────────────────────────────────────────
    # SAVE / LOAD
    # ─────────────────────────────────────────────────

    def _snapshot(self) -> dict:
        return build_snapshot(
            phase=self.phase.value,
            session=session_to_dict(self.session),
            player=self.player.to_dict(),
            npc_states=self.npc_manager.states_to_dict(),
            npc_interactions=self.npc_manager.interactions_to_list(),
            triggered_random_ids=self.rounds.triggered_random_ids,
            timestamp=self.saves.clock(),
        )

    def save_game(self) -> bool:
        if self.phase == GamePhase.START:
            return self._fail("没有进行中的游戏")
        try:
            self.saves.save(self._snapshot())
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Save failed: {e}")
            return self._fail(f"保存失败: {e}")
        self.session.touch_saved()
        self._log_action("SAVE", f"第{self.session.current_round + 1}轮已保存")
        return True

    def load_game(self) -> bool:
        try:
            snapshot = self.saves.load()
        except SnapshotError as e:
            logger.warning(f"Unreadable save: {e}")
            return self._fail(f"存档损坏: {e}")
        except OSError as e:
            logger.error(f"Load failed: {e}")
            return self._fail(f"读取失败: {e}")
        if snapshot is None:
            return self._fail("没有可用的存档")
        return self.continue_game(snapshot)

    def has_saved_game(self) -> bool:
        try:
            return self.saves.has_save()
        except OSError as e:
            logger.error(f"Save check failed: {e}")
            return False

    def clear_save(self) -> bool:
        try:
            self.saves.clear()
        except OSError as e:
            logger.error(f"Clear save failed: {e}")
            return self._fail(f"删除存档失败: {e}")
        self._log_action("SAVE", "存档已删除")
        return True

    def _auto_save(self):
        """Auto-save after state-changing operations while playing."""
        if self.phase != GamePhase.PLAYING:
            return
        try:
            self.saves.save(self._snapshot())
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Auto-save failed: {e}")
            self._log_action("ERROR", f"自动保存失败: {e}")

    # ─────────────────────────────────────────────────
    # STATE QUERIES (for web UI)
    # ─────────────────────────────────────────────────

    def current_event(self):
        return self.rounds.current_event

    def current_random_events(self) -> list:
        return self.rounds.current_random_events()

    def option_availability(self) -> dict:
        return self.rounds.option_availability()

    def round_progress(self) -> dict:
        return self.rounds.round_progress()

    def game_stats(self) -> dict:
        return self.rounds.game_stats()

    def npc_snapshot(self) -> list:
        return self.npc_manager.snapshot()

    def relationship_snapshot(self) -> dict:
        return {k: relationship_to_dict(v) for k, v in self.player.relationships_view().items()}

    def agenda_progress(self) -> dict:
        """npc id -> {goal id: current value} for every registered agenda."""
        out = {}
        for npc in self.catalog.npcs:
            state = self.agendas.agenda_state(npc.id, npc.agenda.id)
            if state is not None:
                out[npc.id] = dict(state.goal_progress)
        return out

    def get_full_state(self) -> dict:
        """Return everything the web UI needs to render."""
        event = self.rounds.current_event
        p = self.player
        return {
            "phase": self.phase.value,
            "progress": self.round_progress(),
            "player": {
                "name": p.name,
                "title": p.title,
                "background": p.background,
                "stats": p.stats.to_dict(),
                "story_paths": {path: p.story_flags.path(path) for path in STORY_PATHS},
                "flags": dict(p.flags),
            },
            "event": event_to_dict(event) if event else None,
            "event_source": self.rounds.event_source.value if self.rounds.event_source else None,
            "event_resolved": self.rounds.resolved,
            "option_availability": self.option_availability(),
            "random_events": self.rounds.staged_to_list(),
            "achievements": [achievement_to_dict(a) for a in self.session.achievements],
            "npcs": self.npc_snapshot(),
            "relationships": self.relationship_snapshot(),
            "agenda": [{"npc_id": r.npc_id, "action_id": r.action_id, "narrative": r.narrative}
                       for r in self.last_agenda_results],
            "agenda_goals": self.agenda_progress(),
            "game_stats": self.game_stats(),
            "narration": self.narration_buffer[-20:],
            "action_log": self.action_log[-100:],
            "last_error": self.last_error,
            "game_over": self.session.game_over,
        }

    # ─────────────────────────────────────────────────
    # DIAGNOSTICS
    # ─────────────────────────────────────────────────

    def health_check(self) -> dict:
        issues = []
        recommendations = []
        s = self.session

        if self.rounds.session is not s:
            issues.append("回合管理器与会话不同步")
        if self.rounds.player is not self.player or self.npc_manager.player is not self.player:
            issues.append("子系统玩家对象不一致")
        if s.current_round < 0 or s.current_round > s.max_rounds:
            issues.append(f"回合数异常: {s.current_round}/{s.max_rounds}")
        if s.current_round >= s.max_rounds and not s.game_over:
            issues.append("已达最大回合但游戏未结束")
        if self.phase == GamePhase.PLAYING and s.game_over:
            issues.append("游戏已结束但仍处于进行阶段")
        if self.phase == GamePhase.PLAYING and not s.has_questionnaire():
            issues.append("进行阶段缺少问卷数据")

        report = self.rules.validate_stats(self.player.stats)
        issues.extend(report.errors)
        recommendations.extend(f"注意: {w}" for w in report.warnings)

        if self.rounds.staged_random:
            recommendations.append("有未确认的随机事件")

        return {
            "healthy": not issues,
            "issues": issues,
            "recommendations": recommendations,
        }

    def engine_summary(self) -> dict:
        return {
            "phase": self.phase.value,
            "progress": self.round_progress(),
            "player": self.player.summary(),
            "events": self.event_system.summary(self.session),
            "npcs": self.npc_manager.system_summary(),
            "agendas": self.agendas.system_summary(),
            "rules": len(self.rules.rules()),
            "random_events": self.rounds.triggered_random_stats(),
            "unlocked_achievements": len(self.session.unlocked_achievements()),
        }

    def stats_advice(self) -> list:
        return stats_advice(self.player.stats)

    def stats_score(self) -> dict:
        return score_stats(self.player.stats)

    # ─────────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────────

    def _log_action(self, action_type: str, detail: str):
        """Add an entry to the action log."""
        entry = {
            "type": action_type,
            "detail": detail,
            "timestamp": datetime.now().isoformat(),
            "round": self.session.current_round if self.session else 0,
        }
        self.action_log.append(entry)
        if self._on_log_entry:
            self._emit("log_entry", self._on_log_entry, entry)
