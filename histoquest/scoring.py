"""
HistoQuest - Scoring
====================

One scoring function shared by both games, configured by a strategy.

CONCEPT: Strategy-configured Scoring
------------------------------------
Trivia Race scores every question on its own: base points, a bonus for the
seconds left on the clock, a bonus for the running streak, and a speed
multiplier for very fast answers.

Timeline Quest scores whole rounds: points per event placed in the right
slot, a bonus for the time left, a perfect-round bonus, and an escalating
bonus for consecutive perfect rounds.

Both are the same formula with different constants, so both go through
score_answer() with a different ScoringStrategy.

The server measures elapsed time, never the client, and every value is a
floored, non-negative integer.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .errors import ConfigError
from .models import AnswerEvent, ScoreBreakdown, ScoreResult, SessionState


@dataclass(frozen=True)
class SpeedThreshold:
    """Answers with at least `min_remaining_s` seconds left get `multiplier`."""
    min_remaining_s: int
    multiplier: float
    label: str = ""


TRIVIA_THRESHOLDS = (
    SpeedThreshold(25, 1.5, "Lightning Fast!"),
    SpeedThreshold(20, 1.3, "Super Quick!"),
    SpeedThreshold(15, 1.1, "Fast!"),
)


@dataclass(frozen=True)
class ScoringStrategy:
    """
    Constants of the scoring formula.

    Attributes:
        base: points for a correct answer (per correct position with
            partial_credit)
        per_second: bonus per remaining second
        per_streak_step: bonus per correct answer already in the streak
        thresholds: speed multipliers, checked from the highest down
        perfect_bonus: flat bonus for a fully correct answer/round
        time_limit_s: default time limit of one item
        partial_credit: imperfect rounds still earn points per position
        timed: the item times out when the limit passes
    """
    base: int = 100
    per_second: float = 3
    per_streak_step: int = 20
    thresholds: Tuple[SpeedThreshold, ...] = TRIVIA_THRESHOLDS
    perfect_bonus: int = 0
    time_limit_s: int = 30
    partial_credit: bool = False
    timed: bool = True

    def __post_init__(self):
        for name in ("base", "per_second", "per_streak_step", "perfect_bonus"):
            if getattr(self, name) < 0:
                raise ConfigError(f"Scoring constant '{name}' must not be negative")
        if self.time_limit_s <= 0:
            raise ConfigError("Time limit must be positive")
        for threshold in self.thresholds:
            if threshold.multiplier < 1:
                raise ConfigError("Speed multipliers must be at least 1.0")


def remaining_seconds(elapsed_ms: int, time_limit_s: int) -> int:
    """Whole seconds left on the clock. Elapsed time is floored to seconds."""
    elapsed_s = max(0, elapsed_ms) // 1000
    return max(0, time_limit_s - elapsed_s)


def speed_multiplier(remaining: int, thresholds: Sequence[SpeedThreshold]) -> Optional[SpeedThreshold]:
    """Returns the highest threshold reached, or None (multiplier 1.0)."""
    for threshold in sorted(thresholds, key=lambda t: t.min_remaining_s, reverse=True):
        if remaining >= threshold.min_remaining_s:
            return threshold
    return None


def score_answer(event: AnswerEvent, state: SessionState, strategy: ScoringStrategy) -> ScoreResult:
    """
    Scores one answer (trivia) or one submitted round (timeline).

    Pure: `state` is only read. The caller applies the result.

    Args:
        event: what the player did and how long it took
        state: session state before this answer (streak, time limit)
        strategy: scoring constants of the current tier

    Returns:
        ScoreResult with the points, a display breakdown and the streak
        values after this answer.

    Examples (trivia, 30 s limit, streak of 2 before the answer):
        answered after 5 s -> (100 + 75 + 40) * 1.5 = 322
        wrong answer       -> 0, streak back to 0
    """
    streak_before = state.streak
    best_before = max(state.best_streak, streak_before)
    time_limit = state.time_limit_s or strategy.time_limit_s
    remaining = remaining_seconds(event.elapsed_ms, time_limit)

    # Skip: nothing earned, nothing lost
    if event.skipped:
        return ScoreResult(
            points=0,
            breakdown=ScoreBreakdown(remaining_seconds=remaining),
            streak=streak_before,
            best_streak=best_before,
            is_correct=False,
            skipped=True,
        )

    if event.is_correct:
        units = 1
        if strategy.partial_credit and event.correct_positions:
            units = event.correct_positions

        base_points = strategy.base * units
        time_bonus = math.floor(remaining * strategy.per_second)
        streak_bonus = streak_before * strategy.per_streak_step
        threshold = speed_multiplier(remaining, strategy.thresholds)
        multiplier = threshold.multiplier if threshold else 1.0

        points = math.floor((base_points + time_bonus + streak_bonus) * multiplier) + strategy.perfect_bonus
        streak = streak_before + 1
        return ScoreResult(
            points=points,
            breakdown=ScoreBreakdown(
                base=base_points,
                time_bonus=time_bonus,
                streak_bonus=streak_bonus,
                perfect_bonus=strategy.perfect_bonus,
                multiplier=multiplier,
                remaining_seconds=remaining,
                speed_label=threshold.label if threshold else "",
            ),
            streak=streak,
            best_streak=max(best_before, streak),
            is_correct=True,
        )

    # Imperfect round: events in the right place and the time left still count
    if strategy.partial_credit and not event.timed_out:
        base_points = strategy.base * (event.correct_positions or 0)
        time_bonus = math.floor(remaining * strategy.per_second)
        threshold = speed_multiplier(remaining, strategy.thresholds)
        multiplier = threshold.multiplier if threshold else 1.0
        return ScoreResult(
            points=math.floor((base_points + time_bonus) * multiplier),
            breakdown=ScoreBreakdown(
                base=base_points,
                time_bonus=time_bonus,
                multiplier=multiplier,
                remaining_seconds=remaining,
                speed_label=threshold.label if threshold else "",
            ),
            streak=0,
            best_streak=best_before,
            is_correct=False,
        )

    return ScoreResult(
        points=0,
        breakdown=ScoreBreakdown(remaining_seconds=remaining),
        streak=0,
        best_streak=best_before,
        is_correct=False,
    )


def hint_penalty(score: int, penalty: int) -> int:
    """Score after paying for a hint. Never goes below zero."""
    return max(0, score - max(0, penalty))


def format_time(seconds: float) -> str:
    """Formats seconds for display (e.g. '2.5s')."""
    return f"{seconds:.1f}s"
