"""HistoQuest: scoring engine and leaderboard for Trivia Race and Timeline Quest."""
