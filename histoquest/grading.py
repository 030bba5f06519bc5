"""
HistoQuest - Performance Grades
===============================

Maps the statistics of a finished session to a grade S, A, B, C or D.

Both games use the same classifier: an ordered list of (predicate, grade)
rules, evaluated top-down, first match wins. Only the tables differ.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Sequence

from .models import Grade


@dataclass(frozen=True)
class GradeStats:
    score_pct: float = 0.0
    accuracy_pct: float = 0.0
    perfect_rounds: int = 0
    total_rounds: int = 0


@dataclass(frozen=True)
class GradeRule:
    predicate: Callable[[GradeStats], bool]
    grade: Grade


class GradeClassifier:
    """
    Table-driven grade classifier.

    Args:
        rules: ordered rules; the first whose predicate holds decides
        titles: display title per grade
        fallback: grade when no rule matches
    """

    def __init__(self, rules: Sequence[GradeRule], titles: Mapping[Grade, str] = None,
                 fallback: Grade = Grade.D):
        self.rules: List[GradeRule] = list(rules)
        self.titles: Dict[Grade, str] = dict(titles or {})
        self.fallback = fallback

    def classify(self, stats: GradeStats) -> Grade:
        for rule in self.rules:
            if rule.predicate(stats):
                return rule.grade
        return self.fallback

    def title(self, grade: Grade) -> str:
        return self.titles.get(grade, "")


def percent(part: float, whole: float) -> int:
    """Whole percentage, rounded half up. 0 when `whole` is 0."""
    if whole <= 0:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


def composite_score(stats: GradeStats, score_weight: float = 0.6, accuracy_weight: float = 0.4) -> float:
    return score_weight * stats.score_pct + accuracy_weight * stats.accuracy_pct


def trivia_rules(thresholds: Sequence[float] = (90, 80, 70, 60)) -> List[GradeRule]:
    """Composite of score and accuracy, bucketed at fixed thresholds."""
    grades = (Grade.S, Grade.A, Grade.B, Grade.C)
    return [
        GradeRule(lambda stats, limit=limit: composite_score(stats) >= limit, grade)
        for grade, limit in zip(grades, thresholds)
    ]


def timeline_rules() -> List[GradeRule]:
    """Accuracy plus perfect rounds; every round perfect is an S."""
    return [
        GradeRule(lambda s: s.total_rounds > 0 and s.perfect_rounds == s.total_rounds, Grade.S),
        GradeRule(lambda s: s.accuracy_pct >= 90 and s.perfect_rounds >= 4, Grade.A),
        GradeRule(lambda s: s.accuracy_pct >= 75 and s.perfect_rounds >= 3, Grade.B),
        GradeRule(lambda s: s.accuracy_pct >= 60, Grade.C),
    ]


TRIVIA_TITLES = {
    Grade.S: "Outstanding!",
    Grade.A: "Excellent!",
    Grade.B: "Great Job!",
    Grade.C: "Good Effort!",
    Grade.D: "Keep Trying!",
}

TIMELINE_TITLES = {
    Grade.S: "Legendary Historian!",
    Grade.A: "Excellent Historian!",
    Grade.B: "Great Historian!",
    Grade.C: "Good Historian!",
    Grade.D: "Keep Practicing!",
}


def trivia_classifier() -> GradeClassifier:
    return GradeClassifier(trivia_rules(), TRIVIA_TITLES)


def timeline_classifier() -> GradeClassifier:
    return GradeClassifier(timeline_rules(), TIMELINE_TITLES)
