"""Score storage backends."""

from .base import ScoreStore
from .json_store import JsonScoreStore
from .memory import InMemoryScoreStore

__all__ = ["InMemoryScoreStore", "JsonScoreStore", "ScoreStore"]
