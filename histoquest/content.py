"""
HistoQuest - Content Pools
==========================

Loads the trivia questions and timeline events from JSON files in the
content directory. The pools are static and read-only; the engine only
draws from them.

If a file is missing or malformed, a small built-in pool is used so the
games stay playable.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from . import config
from .models import ContentItem, DifficultyTier, GameType, Question, TimelineEvent

logger = logging.getLogger(__name__)

TRIVIA_FILE = "trivia_questions.json"
TIMELINE_FILE = "timeline_events.json"

_FALLBACK_QUESTIONS = [
    {
        "id": "fallback-1", "difficulty": "easy", "topic": "First Mass",
        "text": "Where did the First Mass in the Philippines take place according to most historians?",
        "options": ["Butuan", "Limasawa", "Cebu", "Manila"], "correct": 1,
    },
    {
        "id": "fallback-2", "difficulty": "medium", "topic": "Cavite Mutiny",
        "text": "Who was the Spanish Governor-General during the Cavite Mutiny?",
        "options": ["Rafael Izquierdo", "Carlos Maria de la Torre", "Miguel Lopez de Legazpi", "Camilo de Polavieja"],
        "correct": 0,
    },
    {
        "id": "fallback-3", "difficulty": "hard", "topic": "Cry of Rebellion",
        "text": "What historical dispute surrounds the exact date of the Cry of Rebellion?",
        "options": ["August 23 vs August 26", "August 24 vs August 25", "August 23 vs August 24", "August 25 vs August 26"],
        "correct": 0,
    },
]

_FALLBACK_EVENTS = [
    {"id": "fallback-ev-1", "era": "first-mass", "title": "First Mass in Limasawa", "date": "1521-03-31"},
    {"id": "fallback-ev-2", "era": "cavite-mutiny", "title": "Cavite Mutiny Erupts", "date": "1872-01-20"},
    {"id": "fallback-ev-3", "era": "cry-rebellion", "title": "Cry of Pugad Lawin", "date": "1896-08-23"},
    {"id": "fallback-ev-4", "era": "retraction-rizal", "title": "Execution of Rizal", "date": "1896-12-30"},
]


def question_from_dict(data: dict) -> ContentItem:
    return ContentItem(
        id=str(data["id"]),
        tier=DifficultyTier.parse(data.get("difficulty", "easy")),
        group_key=data.get("topic", ""),
        payload=Question(
            text=data["text"],
            options=tuple(data["options"]),
            correct=int(data["correct"]),
            explanation=data.get("explanation", ""),
        ),
    )


def event_from_dict(data: dict) -> ContentItem:
    # Event tiers do not matter: the round decides the difficulty
    return ContentItem(
        id=str(data["id"]),
        tier=DifficultyTier.parse(data.get("difficulty", "easy")),
        group_key=data.get("era", ""),
        payload=TimelineEvent(
            title=data["title"],
            date=date.fromisoformat(data["date"]),
            description=data.get("description", ""),
        ),
    )


class ContentPool:
    """
    Provider of the static content of both games.

    Args:
        content_dir: directory holding the JSON files
    """

    def __init__(self, content_dir: Optional[Path] = None):
        self.content_dir = Path(content_dir or config.CONTENT_DIR)
        self._pools: Dict[GameType, List[ContentItem]] = {}

    def _load(self, filename: str, key: str, parse, fallback: List[dict]) -> List[ContentItem]:
        path = self.content_dir / filename
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            items = [parse(entry) for entry in data[key]]
            logger.info(f"Loaded {len(items)} entries from {path.name}")
            return items
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading {path}: {e}")
            return [parse(entry) for entry in fallback]

    def items_for(self, game_type: GameType) -> List[ContentItem]:
        """All items of a game, loaded on first use."""
        game_type = GameType(game_type)
        if game_type not in self._pools:
            if game_type == GameType.TIMELINE:
                self._pools[game_type] = self._load(TIMELINE_FILE, "events", event_from_dict, _FALLBACK_EVENTS)
            else:
                self._pools[game_type] = self._load(TRIVIA_FILE, "questions", question_from_dict, _FALLBACK_QUESTIONS)
        return list(self._pools[game_type])

    def groups(self, game_type: GameType) -> List[str]:
        """Topics (trivia) or eras (timeline) present in the pool."""
        return sorted({item.group_key for item in self.items_for(game_type) if item.group_key})
