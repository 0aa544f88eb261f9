"""
Scoring Logic for respondent matching.

Responsibilities:
- Pick the partner for one BEFORE respondent within a phase.

Non-Responsibilities:
- No database access.
- No candidate selection.

Invariant:
Given identical inputs in identical order, the same partner is returned.
When several candidates tie, the first one seen wins.
"""

from typing import List, Optional, Tuple

from surveylink.database import Respondent

from .features import name_score, same_email

NAME_SIMILARITY_THRESHOLD = 0.8


def first_email_match(before: Respondent, pool: List[Respondent]) -> Optional[Respondent]:
    """First respondent in ``pool`` with the same normalized email."""
    for after in pool:
        if same_email(before, after):
            return after
    return None


def best_name_match(
    before: Respondent,
    pool: List[Respondent],
    threshold: float = NAME_SIMILARITY_THRESHOLD,
) -> Optional[Tuple[Respondent, float]]:
    """
    Candidate with the strictly highest name similarity at or above
    ``threshold``, with its score. Later candidates must beat the current
    best outright to replace it.
    """
    best: Optional[Respondent] = None
    best_score = 0.0
    for after in pool:
        score = name_score(before, after)
        if score >= threshold and score > best_score:
            best = after
            best_score = score
    if best is None:
        return None
    return best, best_score
