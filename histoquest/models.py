"""
HistoQuest - Data Models
========================

Core data structures shared by the Trivia Race and Timeline Quest engines.

CONCEPT: Owned State
--------------------
A play-through keeps every mutable value in a single SessionState object,
and only the SessionStateMachine writes to it. Content items and score
records are immutable once created; leaderboard entries are derived from
the records and rebuilt on every query.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple


class DifficultyTier(Enum):
    """
    Difficulty of a content item (or of a whole timeline round).

    Tiers are ordered: a session climbs EASY -> MEDIUM -> HARD and never
    goes back down.
    """
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def level(self) -> int:
        return _TIER_LEVELS[self]

    @classmethod
    def parse(cls, value: Any) -> 'DifficultyTier':
        """Accepts an enum member or its name/value in any case."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


_TIER_LEVELS = {
    DifficultyTier.EASY: 0,
    DifficultyTier.MEDIUM: 1,
    DifficultyTier.HARD: 2,
}


class GameType(Enum):
    TRIVIA = "trivia"
    TIMELINE = "timeline"


class Grade(Enum):
    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class PowerUp(Enum):
    """One-shot capabilities, each usable once per session."""
    FIFTY_FIFTY = "fifty_fifty"   # hides wrong options
    SKIP = "skip"                 # moves on without breaking the streak
    EXTRA_TIME = "extra_time"     # extends the current deadline
    HINT = "hint"                 # timeline: reveals one slot, costs points


class LeaderboardWindow(Enum):
    ALL_TIME = "all-time"
    TODAY = "today"
    THIS_WEEK = "this-week"


class GameState(Enum):
    """
    Session State Machine

    States:
    - IDLE: created, nothing selected yet
    - ACTIVE: an item is on screen and its timer is running
    - EVALUATING: the current item was scored, waiting for advance()
    - COMPLETE: every item was evaluated, the summary is frozen
    - ABANDONED: closed before completion, nothing is persisted
    """
    IDLE = "idle"
    ACTIVE = "active"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Question:
    """
    A multiple-choice trivia question.

    The field 'correct' holds the index of the right option.
    """
    text: str
    options: Tuple[str, ...]
    correct: int
    explanation: str = ""

    def is_correct(self, answer: Optional[int]) -> bool:
        return answer is not None and answer == self.correct

    def to_dict(self, hide_answer: bool = True) -> dict:
        """Never ships the right answer together with the question."""
        data = {
            "text": self.text,
            "options": list(self.options),
        }
        if not hide_answer:
            data["correct"] = self.correct
            data["explanation"] = self.explanation
        return data


@dataclass(frozen=True)
class TimelineEvent:
    """A dated historical event to be placed on a timeline."""
    title: str
    date: date
    description: str = ""

    def to_dict(self, hide_answer: bool = True) -> dict:
        data = {"title": self.title, "description": self.description}
        if not hide_answer:
            data["date"] = self.date.isoformat()
        return data


@dataclass(frozen=True)
class ContentItem:
    """
    One entry of a static content pool.

    For trivia the payload is a Question; for timeline events it is a
    TimelineEvent; a timeline *round* is also a ContentItem whose payload
    is a TimelineRound.
    """
    id: str
    tier: DifficultyTier
    group_key: str               # topic / era
    payload: Any = None

    def to_dict(self, hide_answer: bool = True) -> dict:
        data = {
            "id": self.id,
            "tier": self.tier.value,
            "group": self.group_key,
        }
        if hasattr(self.payload, "to_dict"):
            data.update(self.payload.to_dict(hide_answer=hide_answer))
        return data


@dataclass(frozen=True)
class TimelineRound:
    """
    A set of events the player must put in chronological order.

    'correct_order' lists the event ids sorted by date. Events sharing the
    same date are interchangeable: either can fill the other's slot.
    """
    events: Tuple[ContentItem, ...]
    correct_order: Tuple[str, ...]
    phase_label: str = ""

    def event_date(self, event_id: str) -> Optional[date]:
        for event in self.events:
            if event.id == event_id:
                return event.payload.date
        return None

    def slot_matches(self, event_id: Optional[str], position: int) -> bool:
        if event_id is None or not 0 <= position < len(self.correct_order):
            return False
        if event_id == self.correct_order[position]:
            return True
        placed = self.event_date(event_id)
        return placed is not None and placed == self.event_date(self.correct_order[position])

    def count_correct(self, order: Sequence[str]) -> int:
        """Counts the slots holding an event with the right date."""
        return sum(
            1 for position, event_id in enumerate(order)
            if self.slot_matches(event_id, position)
        )

    def to_dict(self, hide_answer: bool = True) -> dict:
        data = {
            "phase": self.phase_label,
            "events": [e.to_dict(hide_answer=hide_answer) for e in self.events],
        }
        if not hide_answer:
            data["correct_order"] = list(self.correct_order)
        return data


@dataclass(frozen=True)
class Phase:
    """One block of a phase plan: `count` items of a single tier."""
    tier: DifficultyTier
    count: int
    label: str = ""


@dataclass(frozen=True)
class AnswerEvent:
    """
    Input to the scoring engine. Not retained after scoring.

    A timeout is an event with no chosen option and no placed positions;
    a skip carries skipped=True.
    """
    item_id: str
    chosen_index: Optional[int]
    elapsed_ms: int
    is_correct: bool
    correct_positions: Optional[int] = None
    total_positions: Optional[int] = None
    skipped: bool = False

    @property
    def timed_out(self) -> bool:
        return not self.skipped and self.chosen_index is None and self.correct_positions is None

    @staticmethod
    def timeout(item_id: str, elapsed_ms: int) -> 'AnswerEvent':
        return AnswerEvent(item_id=item_id, chosen_index=None, elapsed_ms=elapsed_ms, is_correct=False)

    @staticmethod
    def skip(item_id: str, elapsed_ms: int) -> 'AnswerEvent':
        return AnswerEvent(item_id=item_id, chosen_index=None, elapsed_ms=elapsed_ms,
                           is_correct=False, skipped=True)


@dataclass(frozen=True)
class ScoreBreakdown:
    """How the points of one answer were put together (for display)."""
    base: int = 0
    time_bonus: int = 0
    streak_bonus: int = 0
    perfect_bonus: int = 0
    multiplier: float = 1.0
    remaining_seconds: int = 0
    speed_label: str = ""

    def to_dict(self) -> dict:
        return {
            "base": self.base,
            "time_bonus": self.time_bonus,
            "streak_bonus": self.streak_bonus,
            "perfect_bonus": self.perfect_bonus,
            "multiplier": self.multiplier,
            "remaining_seconds": self.remaining_seconds,
            "speed_label": self.speed_label,
        }


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of scoring one answer; 'streak' is the value after it."""
    points: int
    breakdown: ScoreBreakdown
    streak: int
    best_streak: int
    is_correct: bool
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "points": self.points,
            "breakdown": self.breakdown.to_dict(),
            "streak": self.streak,
            "best_streak": self.best_streak,
            "correct": self.is_correct,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class PowerUpOutcome:
    """What a power-up did to the current item."""
    kind: PowerUp
    eliminated: Tuple[int, ...] = ()
    time_limit_s: Optional[int] = None
    hint_event_id: Optional[str] = None
    hint_position: Optional[int] = None
    penalty: int = 0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "eliminated": list(self.eliminated),
            "time_limit_s": self.time_limit_s,
            "hint_event_id": self.hint_event_id,
            "hint_position": self.hint_position,
            "penalty": self.penalty,
        }


@dataclass
class SessionState:
    """
    Everything that changes during one play-through.

    Owned by SessionStateMachine and mutated only through its transitions.
    Discarded on completion or abandonment.
    """
    items: List[ContentItem] = field(default_factory=list)
    current_index: int = 0
    score: int = 0
    streak: int = 0
    best_streak: int = 0
    correct_count: int = 0           # correct answers / correctly placed events
    total_count: int = 0             # evaluated answers / placed events
    perfect_rounds: int = 0
    started_at: Optional[datetime] = None
    started_ms: int = 0              # monotonic clock at start
    item_started_ms: int = 0         # monotonic clock when the item appeared
    time_limit_s: int = 0            # effective limit of the current item
    used_power_ups: Set[PowerUp] = field(default_factory=set)
    eliminated_options: Set[int] = field(default_factory=set)
    phase_index: int = 0
    phase_changed: bool = False
    achievements: List[str] = field(default_factory=list)   # unlocked keys
    results: List[ScoreResult] = field(default_factory=list)

    @property
    def current_item(self) -> Optional[ContentItem]:
        if 0 <= self.current_index < len(self.items):
            return self.items[self.current_index]
        return None

    @property
    def last_result(self) -> Optional[ScoreResult]:
        return self.results[-1] if self.results else None

    def has_more_items(self) -> bool:
        return self.current_index + 1 < len(self.items)


@dataclass(frozen=True)
class ScoreRecord:
    """
    A finished session as persisted. Append-only: a player may own many.

    'difficulty' and 'topic' are only filled in by Timeline Quest.
    """
    player_id: str
    score: int
    correct_count: int
    total_count: int
    accuracy: int
    time_taken_sec: int
    best_streak: int
    grade: str
    created_at: datetime
    game_type: GameType = GameType.TRIVIA
    difficulty: Optional[str] = None
    topic: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "score": self.score,
            "correct_count": self.correct_count,
            "total_count": self.total_count,
            "accuracy": self.accuracy,
            "time_taken_sec": self.time_taken_sec,
            "best_streak": self.best_streak,
            "grade": self.grade,
            "created_at": self.created_at.isoformat(),
            "game_type": self.game_type.value,
            "difficulty": self.difficulty,
            "topic": self.topic,
        }


@dataclass(frozen=True)
class SessionSummary:
    """Frozen end-of-session statistics, available even if saving fails."""
    game_type: GameType
    score: int
    correct_count: int
    total_count: int
    accuracy: int
    time_taken_sec: int
    best_streak: int
    perfect_rounds: int
    total_rounds: int
    grade: Grade
    grade_title: str = ""
    topic: Optional[str] = None
    difficulty: Optional[str] = None

    def to_record(self, player_id: str, created_at: datetime) -> ScoreRecord:
        return ScoreRecord(
            player_id=player_id,
            score=self.score,
            correct_count=self.correct_count,
            total_count=self.total_count,
            accuracy=self.accuracy,
            time_taken_sec=self.time_taken_sec,
            best_streak=self.best_streak,
            grade=self.grade.value,
            created_at=created_at,
            game_type=self.game_type,
            difficulty=self.difficulty,
            topic=self.topic,
        )

    def to_dict(self) -> dict:
        return {
            "game_type": self.game_type.value,
            "score": self.score,
            "correct_count": self.correct_count,
            "total_count": self.total_count,
            "accuracy": self.accuracy,
            "time_taken_sec": self.time_taken_sec,
            "best_streak": self.best_streak,
            "perfect_rounds": self.perfect_rounds,
            "total_rounds": self.total_rounds,
            "grade": self.grade.value,
            "grade_title": self.grade_title,
            "topic": self.topic,
            "difficulty": self.difficulty,
        }


@dataclass(frozen=True)
class PlayerProfile:
    """Opaque identity supplied by the surrounding application."""
    player_id: str
    display_name: str = "User"
    avatar_ref: Optional[str] = None


@dataclass(frozen=True)
class LeaderboardEntry:
    """Derived on every query, never persisted."""
    player_id: str
    display_name: str
    avatar_ref: Optional[str]
    best: ScoreRecord
    rank: int

    def to_dict(self) -> dict:
        data = self.best.to_dict()
        data.update({
            "rank": self.rank,
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
        })
        return data


@dataclass(frozen=True)
class RankInfo:
    rank: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {"rank": self.rank, "total": self.total}
