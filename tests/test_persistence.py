import asyncio
from datetime import timedelta

import pytest

from histoquest.errors import PersistenceFailure
from histoquest.models import GameType, LeaderboardWindow, PlayerProfile, ScoreRecord
from histoquest.persistence import SQLiteScoreStore

from .conftest import START


def record(player_id, score, created_at, game_type=GameType.TRIVIA, **extra):
    return ScoreRecord(
        player_id=player_id,
        score=score,
        correct_count=7,
        total_count=10,
        accuracy=70,
        time_taken_sec=95,
        best_streak=4,
        grade="B",
        created_at=created_at,
        game_type=game_type,
        **extra,
    )


@pytest.fixture
def store(tmp_path):
    return SQLiteScoreStore(tmp_path / "scores.db")


def test_saved_record_reads_back(store):
    original = record("p1", 800, START)

    asyncio.run(store.submit_score(original))
    rows = asyncio.run(store.fetch_scores(GameType.TRIVIA, LeaderboardWindow.ALL_TIME, START))

    assert rows == [original]


def test_games_use_separate_tables(store):
    store.save_score(record("p1", 800, START))
    store.save_score(record("p2", 600, START, GameType.TIMELINE, difficulty="medium", topic="All Topics"))

    trivia = store.load_scores(GameType.TRIVIA, LeaderboardWindow.ALL_TIME, START)
    timeline = store.load_scores(GameType.TIMELINE, LeaderboardWindow.ALL_TIME, START)

    assert [r.player_id for r in trivia] == ["p1"]
    assert [(r.player_id, r.difficulty, r.topic) for r in timeline] == [("p2", "medium", "All Topics")]


def test_rows_come_back_best_first(store):
    store.save_score(record("late", 500, START))
    store.save_score(record("low", 100, START - timedelta(hours=1)))
    store.save_score(record("early", 500, START - timedelta(hours=2)))

    rows = store.load_scores(GameType.TRIVIA, LeaderboardWindow.ALL_TIME, START)

    assert [r.player_id for r in rows] == ["early", "late", "low"]


def test_window_filter_is_applied_in_the_query(store):
    midnight = START.replace(hour=0, minute=0)
    store.save_score(record("today", 100, midnight))
    store.save_score(record("yesterday", 900, midnight - timedelta(seconds=1)))

    rows = store.load_scores(GameType.TRIVIA, LeaderboardWindow.TODAY, START)

    assert [r.player_id for r in rows] == ["today"]


def test_fetch_limit(tmp_path):
    store = SQLiteScoreStore(tmp_path / "scores.db", fetch_limit=3)
    for n in range(6):
        store.save_score(record(f"p{n}", n * 100, START))

    rows = store.load_scores(GameType.TRIVIA, "all-time", START)

    assert [r.score for r in rows] == [500, 400, 300]


def test_profiles_are_upserted(store):
    asyncio.run(store.save_profile(PlayerProfile("p1", "Andres")))
    asyncio.run(store.save_profile(PlayerProfile("p1", "Andres B.", "avatars/1.png")))

    profiles = asyncio.run(store.fetch_profiles(["p1", "p2"]))

    assert profiles == {"p1": PlayerProfile("p1", "Andres B.", "avatars/1.png")}
    assert store.load_profiles([]) == {}


def test_unusable_database_raises_persistence_failure(tmp_path):
    with pytest.raises(PersistenceFailure):
        SQLiteScoreStore(tmp_path)
