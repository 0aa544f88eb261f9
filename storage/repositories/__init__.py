from .matches import MatchRepository, MatchStatistics
from .persons import PersonRepository
from .responses import ResponseRepository

__all__ = [
    "MatchRepository",
    "MatchStatistics",
    "PersonRepository",
    "ResponseRepository",
]
