"""
Feature Extraction for respondent matching.

Responsibilities:
- Compare the identifying fields of two respondents.

Non-Responsibilities:
- No threshold logic.
- No persistence.

Invariant:
Missing data is never a match: a blank email or blank name scores as no
evidence rather than raising.
"""

from surveylink.database import Respondent
from surveylink.normalize import is_blank, name_similarity


def same_email(before: Respondent, after: Respondent) -> bool:
    if is_blank(before.normalized_email) or is_blank(after.normalized_email):
        return False
    return before.normalized_email == after.normalized_email


def name_score(before: Respondent, after: Respondent) -> float:
    return name_similarity(before.display_name, after.display_name)
