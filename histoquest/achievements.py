"""
HistoQuest - Achievements
=========================

One-off badges unlocked during a session and announced to the player.

CONCEPT: Checked after Scoring
------------------------------
Each achievement is a predicate over the session state after an answer was
applied, plus that answer's result and elapsed time. The state machine
checks them after every evaluation; an achievement is unlocked at most once
per session.
"""

from dataclasses import dataclass
from typing import Callable, List, Sequence

from .models import ScoreResult, SessionState

SPEED_DEMON_MS = 30_000
ON_FIRE_STREAK = 3


@dataclass(frozen=True)
class Achievement:
    key: str
    title: str
    message: str
    check: Callable[[SessionState, ScoreResult, int], bool]

    def to_dict(self) -> dict:
        return {"key": self.key, "title": self.title, "message": self.message}


TIMELINE_ACHIEVEMENTS = (
    Achievement(
        key="first-perfect",
        title="First Perfect!",
        message="You completed your first perfect round!",
        check=lambda state, result, elapsed_ms: result.is_correct and state.perfect_rounds == 1,
    ),
    Achievement(
        key="speed-demon",
        title="Speed Demon!",
        message="Perfect round in under 30 seconds!",
        check=lambda state, result, elapsed_ms: result.is_correct and elapsed_ms < SPEED_DEMON_MS,
    ),
    Achievement(
        key="on-fire",
        title="On Fire!",
        message=f"{ON_FIRE_STREAK} perfect rounds in a row!",
        check=lambda state, result, elapsed_ms: state.streak >= ON_FIRE_STREAK,
    ),
)


def newly_unlocked(
    achievements: Sequence[Achievement],
    state: SessionState,
    result: ScoreResult,
    elapsed_ms: int,
) -> List[Achievement]:
    """
    Achievements earned by the answer just applied to `state`.

    Args:
        achievements: candidates of the game mode
        state: session state after the answer
        result: score of the answer
        elapsed_ms: time the player took

    Returns:
        Achievements not yet in state.achievements whose check passes.
    """
    return [
        achievement for achievement in achievements
        if achievement.key not in state.achievements
        and achievement.check(state, result, elapsed_ms)
    ]
