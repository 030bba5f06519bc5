import pytest

from histoquest.grading import (
    GradeClassifier, GradeRule, GradeStats, percent, timeline_classifier, trivia_classifier,
)
from histoquest.models import Grade


@pytest.mark.parametrize("score_pct, accuracy_pct, expected", [
    (100, 100, Grade.S),
    (85, 85, Grade.A),
    (75, 75, Grade.B),
    (65, 65, Grade.C),
    (40, 40, Grade.D),
    (100, 60, Grade.A),      # 60 + 24
    (0, 100, Grade.D),       # 40
])
def test_trivia_grades_use_weighted_composite(score_pct, accuracy_pct, expected):
    stats = GradeStats(score_pct=score_pct, accuracy_pct=accuracy_pct)
    assert trivia_classifier().classify(stats) == expected


@pytest.mark.parametrize("accuracy_pct, perfect_rounds, expected", [
    (100, 5, Grade.S),
    (92, 4, Grade.A),
    (95, 3, Grade.B),
    (80, 3, Grade.B),
    (80, 2, Grade.C),
    (65, 0, Grade.C),
    (50, 1, Grade.D),
])
def test_timeline_grades_use_perfect_rounds(accuracy_pct, perfect_rounds, expected):
    stats = GradeStats(accuracy_pct=accuracy_pct, perfect_rounds=perfect_rounds, total_rounds=5)
    assert timeline_classifier().classify(stats) == expected


def test_timeline_with_no_rounds_is_not_perfect():
    assert timeline_classifier().classify(GradeStats()) == Grade.D


def test_titles():
    assert trivia_classifier().title(Grade.S) == "Outstanding!"
    assert trivia_classifier().title(Grade.D) == "Keep Trying!"
    assert timeline_classifier().title(Grade.S) == "Legendary Historian!"
    assert timeline_classifier().title(Grade.C) == "Good Historian!"


def test_first_matching_rule_wins():
    classifier = GradeClassifier([
        GradeRule(lambda s: s.accuracy_pct >= 50, Grade.B),
        GradeRule(lambda s: s.accuracy_pct >= 90, Grade.S),
    ])

    assert classifier.classify(GradeStats(accuracy_pct=95)) == Grade.B
    assert classifier.classify(GradeStats(accuracy_pct=10)) == Grade.D
    assert classifier.title(Grade.B) == ""


def test_custom_fallback():
    classifier = GradeClassifier([], fallback=Grade.C)
    assert classifier.classify(GradeStats()) == Grade.C


@pytest.mark.parametrize("part, whole, expected", [
    (2, 3, 67),
    (1, 2, 50),
    (1, 8, 13),
    (10, 10, 100),
    (0, 0, 0),
])
def test_percent_rounds_half_up(part, whole, expected):
    assert percent(part, whole) == expected
