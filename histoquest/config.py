"""
HistoQuest - Settings
=====================

Every tunable constant, read once from environment variables.

To run against another database:
    HISTOQUEST_DB_PATH=/tmp/scores.db uvicorn histoquest.main:socket_app
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).parent.parent

DB_PATH = os.environ.get("HISTOQUEST_DB_PATH", str(BASE_DIR / "histoquest.db"))
CONTENT_DIR = Path(os.environ.get("HISTOQUEST_CONTENT_DIR", str(BASE_DIR / "data")))

# Trivia Race
TRIVIA_TIME_LIMIT_SEC = int(os.environ.get("TRIVIA_TIME_LIMIT_SEC", 30))
TRIVIA_EXTRA_TIME_SEC = int(os.environ.get("TRIVIA_EXTRA_TIME_SEC", 15))
TRIVIA_MAX_SCORE = int(os.environ.get("TRIVIA_MAX_SCORE", 2500))

# Timeline Quest
TIMELINE_HINT_PENALTY = int(os.environ.get("TIMELINE_HINT_PENALTY", 50))

# Leaderboard
LEADERBOARD_FETCH_LIMIT = int(os.environ.get("LEADERBOARD_FETCH_LIMIT", 500))
LEADERBOARD_TOP_N = int(os.environ.get("LEADERBOARD_TOP_N", 100))
LEADERBOARD_TIMEOUT_SEC = float(os.environ.get("LEADERBOARD_TIMEOUT_SEC", 5))

# Sessions untouched for this long are dropped from memory
SESSION_TTL_SEC = float(os.environ.get("HISTOQUEST_SESSION_TTL_SEC", 1800))

PORT = int(os.environ.get("PORT", 8000))
