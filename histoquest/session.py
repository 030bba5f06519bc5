"""
HistoQuest - Session State Machine
==================================

Drives one play-through of Trivia Race or Timeline Quest.

CONCEPT: Explicit State Machine
-------------------------------
    IDLE --start--> ACTIVE --submit/timeout/skip--> EVALUATING
    EVALUATING --advance--> ACTIVE (next item) | COMPLETE (last item)
    any state except COMPLETE --close--> ABANDONED

Every transition checks the current state and raises InvalidTransition when
it does not apply. An item is evaluated exactly once.

CONCEPT: Stale Timers
---------------------
The countdown of an item races against the player's answer. Each time a
timer is started or stopped a generation counter is bumped; a callback
carrying an old generation is ignored, so a timer that fires after the
session moved on changes nothing.
"""

import logging
import uuid
from typing import Callable, Collection, Iterable, List, Optional, Sequence

from .achievements import newly_unlocked
from .errors import ConfigError, InvalidTransition
from .grading import GradeStats, percent
from .models import (
    AnswerEvent, ContentItem, GameState, GameType, PowerUp, PowerUpOutcome,
    Question, ScoreResult, SessionState, SessionSummary, TimelineRound,
)
from .modes import GameMode
from .scoring import format_time, hint_penalty, score_answer
from .selector import RoundSelector, validate_phase_plan
from .timers import AsyncioTimer, Clock, SystemClock, Timer

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict], None]


class SessionStateMachine:
    """
    One game session for one player.

    Args:
        mode: game preset (phase plan, scoring, power-ups, grades)
        clock: time source; elapsed time is measured on its monotonic clock
        timer: schedules the per-item timeout
        selector: draws the session content
        session_id: identifier used by the host; random when omitted
    """

    def __init__(
        self,
        mode: GameMode,
        clock: Clock = None,
        timer: Timer = None,
        selector: RoundSelector = None,
        session_id: Optional[str] = None,
    ):
        self.mode = mode
        self.clock = clock or SystemClock()
        self.timer = timer or AsyncioTimer()
        self.selector = selector or RoundSelector()
        self.session_id = session_id or str(uuid.uuid4())[:8]

        self.state = GameState.IDLE
        self.session = SessionState()
        self.group_filter: Optional[tuple] = None

        self._summary: Optional[SessionSummary] = None
        self._timer_handle = None
        self._generation = 0
        self._event_callback: Optional[EventCallback] = None

    def set_event_callback(self, callback: EventCallback):
        """
        Registers the observer of session events.

        The state machine does not know who listens (Socket.IO, tests);
        it only calls the callback with an event name and a payload.
        """
        self._event_callback = callback

    def _emit(self, event: str, data: dict):
        data = {"session_id": self.session_id, **data}
        if self._event_callback:
            self._event_callback(event, data)
        logger.debug(f"Session {self.session_id} event: {event}")

    def _require(self, expected: GameState, action: str):
        if self.state != expected:
            raise InvalidTransition(
                f"Cannot {action} while {self.state.value} (expected {expected.value})"
            )

    @property
    def current_item(self) -> Optional[ContentItem]:
        return self.session.current_item

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def start(self, pool: Iterable[ContentItem], group_filter: Optional[Collection[str]] = None) -> List[ContentItem]:
        """
        Selects the content and shows the first item.

        Legal from IDLE, COMPLETE and ABANDONED. A bad phase plan or a pool
        with nothing to play raises ConfigError and leaves the state as is.
        """
        if self.state in (GameState.ACTIVE, GameState.EVALUATING):
            raise InvalidTransition(f"Cannot start while {self.state.value}")

        plan = self.mode.phase_plan
        validate_phase_plan(plan)
        group_filter = tuple(sorted(group_filter)) if group_filter else None

        if self.mode.game_type == GameType.TIMELINE:
            items = self.selector.plan_rounds(pool, plan, self.mode.events_per_tier, group_filter)
        else:
            items = self.selector.plan(pool, plan, group_filter)

        if not items:
            raise ConfigError("Content pool has nothing to play for this mode")

        self._stop_timer()
        self.session = SessionState(
            items=items,
            started_at=self.clock.now(),
            started_ms=self.clock.monotonic_ms(),
        )
        self.group_filter = group_filter
        self._summary = None
        self.state = GameState.ACTIVE

        logger.info(
            f"Session {self.session_id} started: {self.mode.game_type.value}, {len(items)} items"
        )
        self._begin_item()
        return items

    def submit_answer(self, event: AnswerEvent) -> ScoreResult:
        """Scores the current item. Only legal while ACTIVE."""
        self._require(GameState.ACTIVE, "submit an answer")
        item = self.current_item
        if event.item_id != item.id:
            raise InvalidTransition(f"Answer for '{event.item_id}' but current item is '{item.id}'")
        return self._evaluate(event)

    def answer(self, chosen_index: int) -> ScoreResult:
        """
        Answers the current trivia question.

        Raises:
            ValueError: index out of range or eliminated by 50/50
        """
        self._require(GameState.ACTIVE, "answer")
        item = self.current_item
        question = item.payload
        if not isinstance(question, Question):
            raise InvalidTransition("Current item is not a question")
        if not 0 <= chosen_index < len(question.options):
            raise ValueError(f"Answer index out of range: {chosen_index}")
        if chosen_index in self.session.eliminated_options:
            raise ValueError(f"Option {chosen_index} was eliminated")

        event = AnswerEvent(
            item_id=item.id,
            chosen_index=chosen_index,
            elapsed_ms=self._elapsed_ms(),
            is_correct=question.is_correct(chosen_index),
        )
        return self.submit_answer(event)

    def submit_order(self, order: Sequence[str]) -> ScoreResult:
        """
        Submits the player's ordering of the current timeline round.

        Raises:
            ValueError: unknown or repeated event ids
        """
        self._require(GameState.ACTIVE, "submit an order")
        item = self.current_item
        timeline_round = item.payload
        if not isinstance(timeline_round, TimelineRound):
            raise InvalidTransition("Current item is not a timeline round")

        order = list(order)
        known = {event.id for event in timeline_round.events}
        unknown = [event_id for event_id in order if event_id not in known]
        if unknown:
            raise ValueError(f"Unknown events in order: {unknown}")
        if len(set(order)) != len(order):
            raise ValueError("Each event may only be placed once")

        total = len(timeline_round.events)
        correct = timeline_round.count_correct(order)
        event = AnswerEvent(
            item_id=item.id,
            chosen_index=None,
            elapsed_ms=self._elapsed_ms(),
            is_correct=total > 0 and correct == total,
            correct_positions=correct,
            total_positions=total,
        )
        return self.submit_answer(event)

    def advance(self) -> Optional[ContentItem]:
        """
        Moves on after an evaluation.

        Returns:
            The next item, or None when the session completed.
        """
        self._require(GameState.EVALUATING, "advance")
        s = self.session

        if not s.has_more_items():
            self._complete()
            return None

        previous_tier = s.current_item.tier
        s.current_index += 1
        item = s.current_item
        s.phase_changed = item.tier.level > previous_tier.level
        self.state = GameState.ACTIVE

        if s.phase_changed:
            label = self.mode.label_for(item.tier)
            logger.info(f"Session {self.session_id} entering phase '{label}'")
            self._emit("phase_changed", {
                "phase": label,
                "tier": item.tier.value,
                "index": s.current_index,
            })

        self._begin_item()
        return item

    def close(self):
        """
        Abandons the session. Nothing is saved.

        Legal from every state except COMPLETE.
        """
        if self.state == GameState.COMPLETE:
            raise InvalidTransition("Cannot close a completed session")

        self._stop_timer()
        previous = self.state
        self.state = GameState.ABANDONED
        self.session = SessionState()
        logger.info(f"Session {self.session_id} abandoned (was {previous.value})")
        self._emit("session_abandoned", {})

    def summary(self) -> SessionSummary:
        """Frozen end-of-session statistics. Only available once COMPLETE."""
        self._require(GameState.COMPLETE, "summarize")
        return self._summary

    # =========================================================================
    # POWER-UPS
    # =========================================================================

    def use_power_up(self, kind, current_order: Optional[Sequence[str]] = None) -> PowerUpOutcome:
        """
        Consumes a one-shot power-up on the current item.

        Args:
            kind: PowerUp member or its value
            current_order: timeline only, the player's ordering so far;
                the hint reveals the first slot it gets wrong

        Raises:
            InvalidTransition: not ACTIVE, not offered by the mode,
                already used, or nothing to apply it to
        """
        kind = PowerUp(kind)
        self._require(GameState.ACTIVE, f"use {kind.value}")
        if not self.mode.offers(kind):
            raise InvalidTransition(f"Power-up '{kind.value}' is not available in this mode")
        if kind in self.session.used_power_ups:
            raise InvalidTransition(f"Power-up '{kind.value}' was already used")

        if kind == PowerUp.EXTRA_TIME:
            outcome = self._extra_time()
        elif kind == PowerUp.FIFTY_FIFTY:
            outcome = self._fifty_fifty()
        elif kind == PowerUp.HINT:
            outcome = self._hint(current_order or ())
        else:
            outcome = PowerUpOutcome(kind=PowerUp.SKIP)

        self.session.used_power_ups.add(kind)
        logger.info(f"Session {self.session_id} used {kind.value}")
        self._emit("power_up_used", outcome.to_dict())

        if kind == PowerUp.SKIP:
            self._evaluate(AnswerEvent.skip(self.current_item.id, self._elapsed_ms()))
            self.advance()
        return outcome

    def _extra_time(self) -> PowerUpOutcome:
        s = self.session
        s.time_limit_s += self.mode.extra_time_s
        if self.mode.strategy_for(s.current_item.tier).timed:
            self._start_timer(s.time_limit_s * 1000 - self._elapsed_ms())
        return PowerUpOutcome(kind=PowerUp.EXTRA_TIME, time_limit_s=s.time_limit_s)

    def _fifty_fifty(self) -> PowerUpOutcome:
        s = self.session
        question = s.current_item.payload
        if not isinstance(question, Question):
            raise InvalidTransition("50/50 needs a multiple-choice question")

        wrong = [
            index for index in range(len(question.options))
            if index != question.correct and index not in s.eliminated_options
        ]
        # At least one wrong option stays visible
        count = min(self.mode.eliminate_count, len(wrong) - 1)
        if count <= 0:
            raise InvalidTransition("No option left to eliminate")

        eliminated = sorted(self.selector.rng.sample(wrong, count))
        s.eliminated_options.update(eliminated)
        return PowerUpOutcome(kind=PowerUp.FIFTY_FIFTY, eliminated=tuple(eliminated))

    def _hint(self, current_order: Sequence[str]) -> PowerUpOutcome:
        s = self.session
        timeline_round = s.current_item.payload
        if not isinstance(timeline_round, TimelineRound):
            raise InvalidTransition("Hints are only available on timeline rounds")

        order = list(current_order)
        for position, event_id in enumerate(timeline_round.correct_order):
            placed = order[position] if position < len(order) else None
            if not timeline_round.slot_matches(placed, position):
                break
        else:
            raise InvalidTransition("Every event is already in place")

        new_score = hint_penalty(s.score, self.mode.hint_penalty)
        penalty = s.score - new_score
        s.score = new_score
        return PowerUpOutcome(
            kind=PowerUp.HINT,
            hint_event_id=event_id,
            hint_position=position,
            penalty=penalty,
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _begin_item(self):
        s = self.session
        item = s.current_item
        strategy = self.mode.strategy_for(item.tier)

        s.item_started_ms = self.clock.monotonic_ms()
        s.time_limit_s = strategy.time_limit_s
        s.eliminated_options = set()
        s.phase_index = self._phase_index(item)

        if strategy.timed:
            self._start_timer(s.time_limit_s * 1000)

        self._emit("item_started", {
            "index": s.current_index,
            "total": len(s.items),
            "phase": self.mode.label_for(item.tier),
            "phase_changed": s.phase_changed,
            "time_limit_s": s.time_limit_s,
            "item": item.to_dict(hide_answer=True),
        })

    def _phase_index(self, item: ContentItem) -> int:
        for index, phase in enumerate(self.mode.phase_plan):
            if phase.tier == item.tier:
                return index
        return self.session.phase_index

    def _evaluate(self, event: AnswerEvent) -> ScoreResult:
        self._stop_timer()
        s = self.session
        item = s.current_item

        result = score_answer(event, s, self.mode.strategy_for(item.tier))

        s.score += result.points
        s.streak = result.streak
        s.best_streak = result.best_streak
        if event.total_positions is not None:
            s.total_count += event.total_positions
            s.correct_count += event.correct_positions or 0
            if result.is_correct:
                s.perfect_rounds += 1
        else:
            s.total_count += 1
            if result.is_correct:
                s.correct_count += 1
        s.results.append(result)
        self.state = GameState.EVALUATING

        logger.info(
            f"Session {self.session_id} item {s.current_index + 1}/{len(s.items)}: "
            f"+{result.points} in {format_time(event.elapsed_ms / 1000)}"
        )
        self._emit("answer_scored", {
            "index": s.current_index,
            "result": result.to_dict(),
            "score": s.score,
            "item": item.to_dict(hide_answer=False),
        })

        for achievement in newly_unlocked(self.mode.achievements, s, result, event.elapsed_ms):
            s.achievements.append(achievement.key)
            logger.info(f"Session {self.session_id} unlocked '{achievement.key}'")
            self._emit("achievement", {"index": s.current_index, "achievement": achievement.to_dict()})
        return result

    def _complete(self):
        self._stop_timer()
        self.state = GameState.COMPLETE
        self._summary = self._build_summary()
        logger.info(
            f"Session {self.session_id} complete: {self._summary.score} points, "
            f"grade {self._summary.grade.value}"
        )
        self._emit("session_completed", {"summary": self._summary.to_dict()})

    def _build_summary(self) -> SessionSummary:
        s = self.session
        mode = self.mode
        accuracy = percent(s.correct_count, s.total_count)
        score_pct = s.score / mode.max_score * 100 if mode.max_score > 0 else 0.0
        stats = GradeStats(
            score_pct=score_pct,
            accuracy_pct=accuracy,
            perfect_rounds=s.perfect_rounds,
            total_rounds=len(s.items),
        )
        grade = mode.classifier.classify(stats)

        topic = mode.default_topic
        if self.group_filter and mode.default_topic is not None:
            topic = ", ".join(self.group_filter)

        return SessionSummary(
            game_type=mode.game_type,
            score=s.score,
            correct_count=s.correct_count,
            total_count=s.total_count,
            accuracy=accuracy,
            time_taken_sec=max(0, self.clock.monotonic_ms() - s.started_ms) // 1000,
            best_streak=s.best_streak,
            perfect_rounds=s.perfect_rounds,
            total_rounds=len(s.items),
            grade=grade,
            grade_title=mode.classifier.title(grade),
            topic=topic,
            difficulty=mode.default_difficulty,
        )

    def _elapsed_ms(self) -> int:
        return max(0, self.clock.monotonic_ms() - self.session.item_started_ms)

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    def _start_timer(self, delay_ms: int):
        """Starts the countdown, cancelling any previous one."""
        self._stop_timer()
        generation = self._generation
        self._timer_handle = self.timer.schedule(
            max(0, delay_ms), lambda: self._on_timeout(generation)
        )

    def _stop_timer(self):
        self._generation += 1
        if self._timer_handle is not None:
            self.timer.cancel(self._timer_handle)
            self._timer_handle = None

    def _on_timeout(self, generation: int):
        if generation != self._generation or self.state != GameState.ACTIVE:
            logger.debug(f"Session {self.session_id} ignored a stale timer")
            return

        self._timer_handle = None
        item = self.current_item
        logger.info(f"Session {self.session_id} timed out on '{item.id}'")
        self._emit("timed_out", {"index": self.session.current_index, "item_id": item.id})
        self._evaluate(AnswerEvent.timeout(item.id, self._elapsed_ms()))

    def snapshot(self) -> dict:
        """Current state for the host API. Answers stay hidden while ACTIVE."""
        s = self.session
        item = s.current_item
        data = {
            "session_id": self.session_id,
            "game_type": self.mode.game_type.value,
            "state": self.state.value,
            "groups": list(self.group_filter or ()),
            "index": s.current_index,
            "total": len(s.items),
            "score": s.score,
            "streak": s.streak,
            "best_streak": s.best_streak,
            "correct_count": s.correct_count,
            "total_count": s.total_count,
            "time_limit_s": s.time_limit_s,
            "used_power_ups": sorted(p.value for p in s.used_power_ups),
            "eliminated_options": sorted(s.eliminated_options),
            "phase_index": s.phase_index,
            "achievements": list(s.achievements),
            "item": None,
            "last_result": s.last_result.to_dict() if s.last_result else None,
            "summary": None,
        }
        if item is not None and self.state in (GameState.ACTIVE, GameState.EVALUATING):
            data["phase"] = self.mode.label_for(item.tier)
            data["item"] = item.to_dict(hide_answer=self.state == GameState.ACTIVE)
        if self._summary is not None:
            data["summary"] = self._summary.to_dict()
        return data
