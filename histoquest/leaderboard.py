"""
HistoQuest - Leaderboard
========================

Builds a ranking from the raw score history of one game.

CONCEPT: Best-per-player Reduction
----------------------------------
A player may finish many sessions, but the leaderboard shows each player
once, with their best record inside the time window:

1. keep the records created at or after the window start
2. keep one record per player: highest score, earliest on a tie
3. sort by score (descending), then by creation time (earliest first)
4. rank = 1-based position

The aggregator is pure: same records in, same ranking out, no I/O.
Duplicate submissions are harmless since step 2 absorbs them.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

from .models import LeaderboardEntry, LeaderboardWindow, PlayerProfile, RankInfo, ScoreRecord
from .timers import Clock, SystemClock

DEFAULT_DISPLAY_NAME = "User"


def window_start(window: LeaderboardWindow, now: datetime) -> Optional[datetime]:
    """
    Inclusive lower bound of a window, in the timezone of `now`.

    Today starts at midnight; this week starts on the most recent Sunday
    at midnight (today, if today is a Sunday). All-time has no bound.
    """
    window = LeaderboardWindow(window)
    if window == LeaderboardWindow.ALL_TIME:
        return None

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == LeaderboardWindow.TODAY:
        return midnight

    # weekday(): Monday is 0, Sunday is 6
    days_since_sunday = (now.weekday() + 1) % 7
    return midnight - timedelta(days=days_since_sunday)


def _is_better(candidate: ScoreRecord, current: ScoreRecord) -> bool:
    if candidate.score != current.score:
        return candidate.score > current.score
    return candidate.created_at < current.created_at


def best_per_player(records: Iterable[ScoreRecord]) -> Dict[str, ScoreRecord]:
    """One record per player: highest score, ties go to the earliest."""
    best: Dict[str, ScoreRecord] = {}
    for record in records:
        current = best.get(record.player_id)
        if current is None or _is_better(record, current):
            best[record.player_id] = record
    return best


def _ranking_key(record: ScoreRecord):
    return (-record.score, record.created_at, record.player_id)


class LeaderboardAggregator:
    """
    Window filter, reduction and ranking shared by both games.

    Args:
        clock: supplies "now" when a call does not pass one
        limit: default number of entries returned by rank()
    """

    def __init__(self, clock: Clock = None, limit: Optional[int] = None):
        self.clock = clock or SystemClock()
        self.limit = limit

    def filter_window(
        self,
        records: Iterable[ScoreRecord],
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
    ) -> List[ScoreRecord]:
        start = window_start(window, now or self.clock.now())
        if start is None:
            return list(records)
        return [record for record in records if record.created_at >= start]

    def ranked_bests(
        self,
        records: Iterable[ScoreRecord],
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
    ) -> List[ScoreRecord]:
        filtered = self.filter_window(records, window, now)
        return sorted(best_per_player(filtered).values(), key=_ranking_key)

    def rank(
        self,
        records: Iterable[ScoreRecord],
        window: LeaderboardWindow,
        now: Optional[datetime] = None,
        profiles: Optional[Mapping[str, PlayerProfile]] = None,
        limit: Optional[int] = None,
    ) -> List[LeaderboardEntry]:
        """
        Ranked leaderboard of a window.

        Args:
            records: score history, in any order
            window: all-time, today or this-week
            now: reference time for the window
            profiles: display names and avatars by player id; unknown
                players are shown as "User"
            limit: keep only the top entries

        Returns:
            Entries with ranks 1..n, at most one per player.
        """
        profiles = profiles or {}
        limit = limit if limit is not None else self.limit

        ordered = self.ranked_bests(records, window, now)
        if limit is not None:
            ordered = ordered[:max(0, limit)]

        entries = []
        for position, record in enumerate(ordered, start=1):
            profile = profiles.get(record.player_id)
            entries.append(LeaderboardEntry(
                player_id=record.player_id,
                display_name=profile.display_name if profile and profile.display_name else DEFAULT_DISPLAY_NAME,
                avatar_ref=profile.avatar_ref if profile else None,
                best=record,
                rank=position,
            ))
        return entries

    def rank_of(
        self,
        records: Iterable[ScoreRecord],
        window: LeaderboardWindow,
        player_id: str,
        score: int,
        now: Optional[datetime] = None,
    ) -> Optional[RankInfo]:
        """
        Rank a player holds (or would hold) with `score` in a window.

        When the player's best in the window has that score, this is its
        position in rank(). Otherwise the score is treated as a new, latest
        submission: it ranks below every other player with an equal or
        higher score.

        Returns:
            RankInfo(rank, total), or None when the window is empty.
        """
        ordered = self.ranked_bests(records, window, now)
        if not ordered:
            return None

        for position, record in enumerate(ordered, start=1):
            if record.player_id == player_id and record.score == score:
                return RankInfo(rank=position, total=len(ordered))

        others = [record for record in ordered if record.player_id != player_id]
        ahead = sum(1 for record in others if record.score >= score)
        return RankInfo(rank=ahead + 1, total=len(others) + 1)
