"""
HistoQuest - Completion and Leaderboard Flow
============================================

Glue between a finished session, the score store and the leaderboard.

CONCEPT: Non-blocking Failures
------------------------------
The summary of a finished session is frozen before anything is saved, so
the player always sees it. A failed save is returned as an error next to
the summary (the UI can offer a retry), and a failed or slow leaderboard
read yields an empty result instead of an exception: ranking is a bonus,
not part of finishing the game.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import PersistenceFailure
from .leaderboard import LeaderboardAggregator
from .models import (
    GameType, LeaderboardEntry, LeaderboardWindow, PlayerProfile, RankInfo,
    ScoreRecord, SessionSummary,
)
from .persistence import ScorePersistence
from .session import SessionStateMachine
from .timers import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    summary: SessionSummary
    record: Optional[ScoreRecord]
    saved: bool
    error: Optional[str] = None
    rank: Optional[RankInfo] = None

    def to_dict(self) -> dict:
        return {
            "summary": self.summary.to_dict(),
            "record": self.record.to_dict() if self.record else None,
            "saved": self.saved,
            "error": self.error,
            "rank": self.rank.to_dict() if self.rank else None,
        }


@dataclass
class LeaderboardResult:
    success: bool
    entries: List[LeaderboardEntry] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "entries": [entry.to_dict() for entry in self.entries],
            "error": self.error,
        }


class GameService:
    """
    Saves finished sessions and reads leaderboards back.

    Args:
        persistence: score store (submit_score / fetch_scores)
        clock: timestamps records and anchors the windows
        aggregator: leaderboard ranking
        top_n: entries shown per leaderboard
        timeout_s: maximum wait for a leaderboard read
    """

    def __init__(
        self,
        persistence: ScorePersistence,
        clock: Clock = None,
        aggregator: LeaderboardAggregator = None,
        top_n: Optional[int] = 100,
        timeout_s: Optional[float] = 5.0,
    ):
        self.persistence = persistence
        self.clock = clock or SystemClock()
        self.aggregator = aggregator or LeaderboardAggregator(clock=self.clock)
        self.top_n = top_n
        self.timeout_s = timeout_s

    async def complete_session(
        self,
        machine: SessionStateMachine,
        player: PlayerProfile,
        window: LeaderboardWindow = LeaderboardWindow.ALL_TIME,
    ) -> CompletionResult:
        """
        Saves a completed session and looks up the rank it earned.

        Raises:
            InvalidTransition: the session is not complete yet
        """
        summary = machine.summary()
        record = summary.to_record(player.player_id, self.clock.now())

        try:
            await self.persistence.submit_score(record)
        except Exception as e:
            logger.error(f"Could not save score of {player.player_id}: {e}")
            return CompletionResult(summary=summary, record=record, saved=False, error=str(e))

        save_profile = getattr(self.persistence, "save_profile", None)
        if save_profile is not None:
            try:
                await save_profile(player)
            except Exception as e:
                logger.warning(f"Could not save profile of {player.player_id}: {e}")

        rank = await self.rank_for(summary.game_type, player.player_id, summary.score, window)
        return CompletionResult(summary=summary, record=record, saved=True, rank=rank)

    async def _fetch(self, game_type: GameType, window: LeaderboardWindow, now) -> List[ScoreRecord]:
        try:
            return await asyncio.wait_for(
                self.persistence.fetch_scores(game_type, window, now),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"Leaderboard read timed out after {self.timeout_s}s") from e

    async def rank_for(
        self,
        game_type: GameType,
        player_id: str,
        score: int,
        window: LeaderboardWindow = LeaderboardWindow.ALL_TIME,
    ) -> Optional[RankInfo]:
        """Rank of a score in a window, or None when it cannot be computed."""
        now = self.clock.now()
        try:
            records = await self._fetch(game_type, window, now)
        except Exception as e:
            logger.warning(f"Rank lookup failed: {e}")
            return None
        return self.aggregator.rank_of(records, window, player_id, score, now)

    async def leaderboard(
        self,
        game_type: GameType,
        window: LeaderboardWindow = LeaderboardWindow.ALL_TIME,
        limit: Optional[int] = None,
    ) -> LeaderboardResult:
        """Ranked leaderboard. Never raises: failures come back as success=False."""
        game_type = GameType(game_type)
        window = LeaderboardWindow(window)
        now = self.clock.now()

        try:
            records = await self._fetch(game_type, window, now)
            profiles = {}
            fetch_profiles = getattr(self.persistence, "fetch_profiles", None)
            if fetch_profiles is not None and records:
                profiles = await fetch_profiles({record.player_id for record in records})
        except Exception as e:
            logger.warning(f"Leaderboard read failed: {e}")
            return LeaderboardResult(success=False, error=str(e))

        entries = self.aggregator.rank(
            records, window, now, profiles,
            limit=limit if limit is not None else self.top_n,
        )
        return LeaderboardResult(success=True, entries=entries)
