import random
from dataclasses import replace

import pytest

from histoquest.errors import ConfigError
from histoquest.models import AnswerEvent, DifficultyTier, SessionState
from histoquest.modes import timeline_quest
from histoquest.scoring import (
    ScoringStrategy, SpeedThreshold, format_time, hint_penalty,
    remaining_seconds, score_answer, speed_multiplier, TRIVIA_THRESHOLDS,
)

TRIVIA = ScoringStrategy(base=100, per_second=3, per_streak_step=20)


def correct(elapsed_ms, item_id="q1"):
    return AnswerEvent(item_id=item_id, chosen_index=1, elapsed_ms=elapsed_ms, is_correct=True)


def wrong(elapsed_ms, item_id="q1"):
    return AnswerEvent(item_id=item_id, chosen_index=2, elapsed_ms=elapsed_ms, is_correct=False)


def test_fast_correct_answer_with_streak():
    state = SessionState(streak=2, best_streak=2, time_limit_s=30)

    result = score_answer(correct(5000), state, TRIVIA)

    assert result.breakdown.time_bonus == 75
    assert result.breakdown.streak_bonus == 40
    assert result.breakdown.multiplier == 1.5
    assert result.breakdown.speed_label == "Lightning Fast!"
    assert result.points == 322
    assert result.streak == 3
    assert result.best_streak == 3


def test_first_correct_answer_earns_no_streak_bonus():
    result = score_answer(correct(16000), SessionState(time_limit_s=30), TRIVIA)

    assert result.breakdown.streak_bonus == 0
    assert result.points == 100 + 42
    assert result.streak == 1


@pytest.mark.parametrize("elapsed_ms, expected", [
    (10000, 208),    # 20 s left: (100 + 60) * 1.3
    (15000, 159),    # 15 s left: (100 + 45) * 1.1, floored
    (16000, 142),    # 14 s left: no multiplier
    (45000, 100),    # over the limit: no time bonus
])
def test_speed_multiplier_steps(elapsed_ms, expected):
    assert score_answer(correct(elapsed_ms), SessionState(time_limit_s=30), TRIVIA).points == expected


def test_elapsed_time_is_floored_to_seconds():
    assert remaining_seconds(5999, 30) == 25
    assert remaining_seconds(60000, 30) == 0
    assert remaining_seconds(-50, 30) == 30


def test_extended_time_limit_raises_time_bonus():
    state = SessionState(time_limit_s=45)

    result = score_answer(correct(5000), state, TRIVIA)

    assert result.breakdown.remaining_seconds == 40
    assert result.points == 330


def test_wrong_answer_resets_streak_but_keeps_best():
    state = SessionState(streak=4, best_streak=6, time_limit_s=30)

    result = score_answer(wrong(3000), state, TRIVIA)

    assert result.points == 0
    assert result.streak == 0
    assert result.best_streak == 6
    assert not result.is_correct


def test_timeout_scores_like_a_wrong_answer():
    state = SessionState(streak=3, best_streak=3, time_limit_s=30)

    result = score_answer(AnswerEvent.timeout("q1", 30000), state, TRIVIA)

    assert result.points == 0
    assert result.streak == 0
    assert result.best_streak == 3


def test_skip_keeps_streak():
    state = SessionState(streak=3, best_streak=5, time_limit_s=30)

    result = score_answer(AnswerEvent.skip("q1", 2000), state, TRIVIA)

    assert result.points == 0
    assert result.skipped
    assert result.streak == 3
    assert result.best_streak == 5


def test_scoring_does_not_mutate_state():
    state = SessionState(streak=2, best_streak=2, score=500, time_limit_s=30)
    before = replace(state)

    first = score_answer(correct(5000), state, TRIVIA)
    second = score_answer(correct(5000), state, TRIVIA)

    assert first == second
    assert state == before


def test_best_streak_never_decreases():
    rng = random.Random(3)
    state = SessionState(time_limit_s=30)
    previous_best = 0

    for n in range(300):
        kind = rng.choice(["correct", "wrong", "timeout", "skip"])
        elapsed = rng.randint(0, 40000)
        if kind == "correct":
            event = correct(elapsed, f"q{n}")
        elif kind == "wrong":
            event = wrong(elapsed, f"q{n}")
        elif kind == "timeout":
            event = AnswerEvent.timeout(f"q{n}", elapsed)
        else:
            event = AnswerEvent.skip(f"q{n}", elapsed)

        result = score_answer(event, state, TRIVIA)

        assert result.points >= 0
        assert result.best_streak >= previous_best
        assert result.best_streak >= result.streak
        if kind in ("wrong", "timeout"):
            assert result.points == 0
            assert result.streak == 0

        state.streak = result.streak
        state.best_streak = result.best_streak
        state.score += result.points
        previous_best = result.best_streak


# =============================================================================
# TIMELINE ROUNDS
# =============================================================================

def round_event(correct_positions, total, elapsed_ms):
    return AnswerEvent(
        item_id="round-1",
        chosen_index=None,
        elapsed_ms=elapsed_ms,
        is_correct=correct_positions == total,
        correct_positions=correct_positions,
        total_positions=total,
    )


def test_perfect_round_score():
    strategy = timeline_quest().strategy_for(DifficultyTier.EASY)
    state = SessionState(streak=1, best_streak=1, time_limit_s=strategy.time_limit_s)

    result = score_answer(round_event(4, 4, 30000), state, strategy)

    # 4 * 50 + (300 - 2 * 30) + 1 * 100 + 250
    assert result.breakdown.base == 200
    assert result.breakdown.time_bonus == 240
    assert result.breakdown.streak_bonus == 100
    assert result.breakdown.perfect_bonus == 250
    assert result.points == 790
    assert result.streak == 2


def test_imperfect_round_earns_partial_credit():
    strategy = timeline_quest().strategy_for(DifficultyTier.EASY)
    state = SessionState(streak=2, best_streak=2, time_limit_s=strategy.time_limit_s)

    result = score_answer(round_event(2, 4, 30000), state, strategy)

    assert result.points == 100 + 240
    assert result.streak == 0
    assert result.best_streak == 2
    assert not result.is_correct


def test_round_time_bonus_is_floored_at_zero():
    strategy = timeline_quest().strategy_for(DifficultyTier.HARD)
    state = SessionState(time_limit_s=strategy.time_limit_s)

    result = score_answer(round_event(5, 5, 900000), state, strategy)

    assert result.breakdown.time_bonus == 0
    assert result.points == 250 + 600


def test_round_with_nothing_in_place_keeps_time_bonus():
    strategy = timeline_quest().strategy_for(DifficultyTier.MEDIUM)
    state = SessionState(streak=1, best_streak=1, time_limit_s=strategy.time_limit_s)

    result = score_answer(round_event(0, 4, 10000), state, strategy)

    assert result.breakdown.base == 0
    assert result.points == 500 - 2 * 10
    assert result.streak == 0
    assert result.best_streak == 1


def test_timed_out_round_earns_nothing():
    strategy = timeline_quest().strategy_for(DifficultyTier.MEDIUM)
    state = SessionState(streak=1, best_streak=1, time_limit_s=strategy.time_limit_s)

    result = score_answer(AnswerEvent.timeout("round-1", 10000), state, strategy)

    assert result.points == 0
    assert result.streak == 0


# =============================================================================
# HELPERS
# =============================================================================

def test_speed_multiplier_lookup():
    assert speed_multiplier(30, TRIVIA_THRESHOLDS).multiplier == 1.5
    assert speed_multiplier(22, TRIVIA_THRESHOLDS).label == "Super Quick!"
    assert speed_multiplier(14, TRIVIA_THRESHOLDS) is None
    assert speed_multiplier(30, ()) is None


def test_thresholds_are_checked_from_highest():
    unordered = (SpeedThreshold(10, 1.2, "ok"), SpeedThreshold(20, 2.0, "wow"))
    assert speed_multiplier(25, unordered).label == "wow"


def test_hint_penalty_never_goes_negative():
    assert hint_penalty(120, 50) == 70
    assert hint_penalty(30, 50) == 0
    assert hint_penalty(0, 50) == 0


@pytest.mark.parametrize("kwargs", [
    {"base": -1},
    {"per_second": -2},
    {"time_limit_s": 0},
    {"thresholds": (SpeedThreshold(10, 0.5),)},
])
def test_invalid_strategy_is_rejected(kwargs):
    with pytest.raises(ConfigError):
        ScoringStrategy(**kwargs)


def test_format_time():
    assert format_time(2.5) == "2.5s"
