from .resolver import MatchingEngine, MatchResult

__all__ = ["MatchingEngine", "MatchResult"]
