"""
HistoQuest - Game Modes
=======================

Presets tying together the phase plan, the scoring strategy of each tier,
the power-ups on offer and the grade table of one game.

CONCEPT: Configuration, not Code
--------------------------------
Trivia Race and Timeline Quest run on the same state machine. Everything
that makes them different lives in a GameMode value built here.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple

from . import config
from .achievements import TIMELINE_ACHIEVEMENTS, Achievement
from .errors import ConfigError
from .grading import GradeClassifier, timeline_classifier, trivia_classifier
from .models import DifficultyTier, GameType, Phase, PowerUp
from .scoring import ScoringStrategy
from .selector import DEFAULT_EVENTS_PER_TIER


@dataclass(frozen=True)
class GameMode:
    game_type: GameType
    phase_plan: Tuple[Phase, ...]
    strategies: Mapping[DifficultyTier, ScoringStrategy]
    classifier: GradeClassifier
    power_ups: FrozenSet[PowerUp] = frozenset()
    max_score: int = 2500
    events_per_tier: Mapping[DifficultyTier, int] = field(default_factory=dict)
    extra_time_s: int = 15
    hint_penalty: int = 50
    eliminate_count: int = 2
    default_topic: Optional[str] = None
    default_difficulty: Optional[str] = None
    achievements: Tuple[Achievement, ...] = ()

    def strategy_for(self, tier: DifficultyTier) -> ScoringStrategy:
        try:
            return self.strategies[tier]
        except KeyError:
            raise ConfigError(f"No scoring strategy for tier '{tier.value}'") from None

    def label_for(self, tier: DifficultyTier) -> str:
        for phase in self.phase_plan:
            if phase.tier == tier:
                return phase.label
        return ""

    def offers(self, kind: PowerUp) -> bool:
        return kind in self.power_ups

    @property
    def session_length(self) -> int:
        return sum(phase.count for phase in self.phase_plan)


def trivia_race(
    time_limit_s: int = None,
    extra_time_s: int = None,
    max_score: int = None,
) -> GameMode:
    """
    Trivia Race: 10 questions (4 easy, 4 medium, 2 hard), 30 s each.

    Correct answers earn 100 points, 3 points per second left, 20 points
    per answer already in the streak, and up to 1.5x for fast answers.
    """
    strategy = ScoringStrategy(
        base=100,
        per_second=3,
        per_streak_step=20,
        time_limit_s=time_limit_s or config.TRIVIA_TIME_LIMIT_SEC,
    )
    return GameMode(
        game_type=GameType.TRIVIA,
        phase_plan=(
            Phase(DifficultyTier.EASY, 4, "Warm Up"),
            Phase(DifficultyTier.MEDIUM, 4, "Challenge"),
            Phase(DifficultyTier.HARD, 2, "Expert"),
        ),
        strategies={tier: strategy for tier in DifficultyTier},
        classifier=trivia_classifier(),
        power_ups=frozenset({PowerUp.FIFTY_FIFTY, PowerUp.SKIP, PowerUp.EXTRA_TIME}),
        max_score=max_score or config.TRIVIA_MAX_SCORE,
        extra_time_s=extra_time_s or config.TRIVIA_EXTRA_TIME_SEC,
    )


def _round_strategy(perfect_bonus: int, time_cap: int) -> ScoringStrategy:
    # Bonus of (cap - 2 * seconds), floored at zero
    return ScoringStrategy(
        base=50,
        per_second=2,
        per_streak_step=100,
        thresholds=(),
        perfect_bonus=perfect_bonus,
        time_limit_s=time_cap // 2,
        partial_credit=True,
        timed=False,
    )


def timeline_quest(hint_penalty: int = None) -> GameMode:
    """
    Timeline Quest: 5 rounds of ordering events by date.

    Rounds grow from 4 events inside one era to 5 events across all eras.
    Each event in the right slot earns 50 points; perfect rounds add a
    tier bonus and 100 points per perfect round in a row before them.
    """
    return GameMode(
        game_type=GameType.TIMELINE,
        phase_plan=(
            Phase(DifficultyTier.EASY, 2, "Warm Up Phase"),
            Phase(DifficultyTier.MEDIUM, 2, "Challenge Phase"),
            Phase(DifficultyTier.HARD, 1, "Expert Phase"),
        ),
        strategies={
            DifficultyTier.EASY: _round_strategy(250, 300),
            DifficultyTier.MEDIUM: _round_strategy(400, 500),
            DifficultyTier.HARD: _round_strategy(600, 800),
        },
        classifier=timeline_classifier(),
        power_ups=frozenset({PowerUp.HINT}),
        events_per_tier=dict(DEFAULT_EVENTS_PER_TIER),
        hint_penalty=config.TIMELINE_HINT_PENALTY if hint_penalty is None else hint_penalty,
        default_topic="All Topics",
        default_difficulty="medium",
        achievements=TIMELINE_ACHIEVEMENTS,
    )


_PRESETS = {
    GameType.TRIVIA: trivia_race,
    GameType.TIMELINE: timeline_quest,
}


def mode_for(game_type) -> GameMode:
    """Default preset of a game type (enum member or its value)."""
    if not isinstance(game_type, GameType):
        try:
            game_type = GameType(str(game_type).lower())
        except ValueError:
            raise ConfigError(f"Unknown game type: {game_type}") from None
    return _PRESETS[game_type]()
