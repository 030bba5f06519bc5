"""
HistoQuest - Score Storage
==========================

SQLite storage for finished sessions and player profiles.

Score records are append-only: every finished session adds a row to the
table of its game (trivia_scores or timeline_scores). The leaderboard
reads them back filtered by window, best first.

The sqlite3 calls are blocking, so the async API runs them in a worker
thread with asyncio.to_thread.
"""

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from .errors import PersistenceFailure
from .leaderboard import window_start
from .models import GameType, LeaderboardWindow, PlayerProfile, ScoreRecord

logger = logging.getLogger(__name__)

TABLES = {
    GameType.TRIVIA: "trivia_scores",
    GameType.TIMELINE: "timeline_scores",
}

_SCORE_COLUMNS = """
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    score INTEGER NOT NULL,
    correct_answers INTEGER NOT NULL,
    total_questions INTEGER NOT NULL,
    accuracy INTEGER NOT NULL,
    time_taken INTEGER NOT NULL,
    best_streak INTEGER NOT NULL,
    performance_grade TEXT NOT NULL,
    difficulty TEXT,
    topic TEXT,
    created_at TEXT NOT NULL
"""


class ScorePersistence(Protocol):
    async def submit_score(self, record: ScoreRecord) -> None:
        ...

    async def fetch_scores(
        self,
        game_type: GameType,
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
    ) -> List[ScoreRecord]:
        ...


def _to_db_time(moment: datetime) -> str:
    # Stored in UTC so that text comparison follows time order
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(text: str) -> datetime:
    return datetime.fromisoformat(text)


class SQLiteScoreStore:
    """
    Score store on a SQLite file.

    Args:
        db_path: database file (":memory:" is not supported, every call
            opens its own connection)
        fetch_limit: rows read per leaderboard query
    """

    def __init__(self, db_path: str = "histoquest.db", fetch_limit: int = 500):
        self.db_path = str(db_path)
        self.fetch_limit = fetch_limit
        self.init_db()

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self):
        """Creates the tables when missing."""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                for table in TABLES.values():
                    cursor.execute(f"CREATE TABLE IF NOT EXISTS {table} ({_SCORE_COLUMNS})")
                    cursor.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{table}_score "
                        f"ON {table} (score DESC, created_at ASC)"
                    )

                cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_profiles (
                    user_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    avatar_ref TEXT
                )
                """)
            logger.info(f"Database ready at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Error initializing database: {e}")
            raise PersistenceFailure(f"Cannot initialize database: {e}") from e

    # =========================================================================
    # SYNC API
    # =========================================================================

    def save_score(self, record: ScoreRecord):
        table = TABLES[record.game_type]
        try:
            with self._get_connection() as conn:
                conn.execute(f"""
                INSERT INTO {table} (user_id, score, correct_answers, total_questions,
                    accuracy, time_taken, best_streak, performance_grade,
                    difficulty, topic, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.player_id, record.score, record.correct_count, record.total_count,
                    record.accuracy, record.time_taken_sec, record.best_streak, record.grade,
                    record.difficulty, record.topic, _to_db_time(record.created_at),
                ))
            logger.info(f"Saved {record.game_type.value} score {record.score} for {record.player_id}")
        except sqlite3.Error as e:
            logger.error(f"Error saving score: {e}")
            raise PersistenceFailure(f"Cannot save score: {e}") from e

    def load_scores(
        self,
        game_type: GameType,
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
    ) -> List[ScoreRecord]:
        """Records inside the window, best first, at most fetch_limit rows."""
        game_type = GameType(game_type)
        table = TABLES[game_type]
        start = window_start(window, now or datetime.now().astimezone())

        query = f"""
        SELECT user_id, score, correct_answers, total_questions, accuracy, time_taken,
            best_streak, performance_grade, difficulty, topic, created_at
        FROM {table}
        """
        params: list = []
        if start is not None:
            query += " WHERE created_at >= ?"
            params.append(_to_db_time(start))
        query += " ORDER BY score DESC, created_at ASC LIMIT ?"
        params.append(self.fetch_limit)

        try:
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error reading scores: {e}")
            raise PersistenceFailure(f"Cannot read scores: {e}") from e

        return [
            ScoreRecord(
                player_id=row[0],
                score=row[1],
                correct_count=row[2],
                total_count=row[3],
                accuracy=row[4],
                time_taken_sec=row[5],
                best_streak=row[6],
                grade=row[7],
                difficulty=row[8],
                topic=row[9],
                created_at=_from_db_time(row[10]),
                game_type=game_type,
            )
            for row in rows
        ]

    def store_profile(self, profile: PlayerProfile):
        try:
            with self._get_connection() as conn:
                conn.execute("""
                INSERT INTO player_profiles (user_id, display_name, avatar_ref)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    avatar_ref = excluded.avatar_ref
                """, (profile.player_id, profile.display_name, profile.avatar_ref))
        except sqlite3.Error as e:
            logger.error(f"Error saving profile: {e}")
            raise PersistenceFailure(f"Cannot save profile: {e}") from e

    def load_profiles(self, player_ids: Iterable[str]) -> Dict[str, PlayerProfile]:
        ids = list(dict.fromkeys(player_ids))
        if not ids:
            return {}

        placeholders = ", ".join("?" for _ in ids)
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    f"SELECT user_id, display_name, avatar_ref FROM player_profiles "
                    f"WHERE user_id IN ({placeholders})",
                    ids,
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error reading profiles: {e}")
            raise PersistenceFailure(f"Cannot read profiles: {e}") from e

        return {row[0]: PlayerProfile(row[0], row[1], row[2]) for row in rows}

    # =========================================================================
    # ASYNC API
    # =========================================================================

    async def submit_score(self, record: ScoreRecord) -> None:
        await asyncio.to_thread(self.save_score, record)

    async def fetch_scores(
        self,
        game_type: GameType,
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
    ) -> List[ScoreRecord]:
        return await asyncio.to_thread(self.load_scores, game_type, window, now)

    async def save_profile(self, profile: PlayerProfile) -> None:
        await asyncio.to_thread(self.store_profile, profile)

    async def fetch_profiles(self, player_ids: Iterable[str]) -> Dict[str, PlayerProfile]:
        return await asyncio.to_thread(self.load_profiles, list(player_ids))
