"""
Candidate Selection Logic.

Responsibilities:
- Partition unmatched respondents into per-cohort pools.
- Drop respondents that require manual matching.
- Decide which respondents are candidates for each phase.

Non-Responsibilities:
- No scoring.
- No similarity computation.
- No persistence.

Invariant:
Pools never mix cohorts, and a respondent flagged for manual matching never
reaches an automatic phase.
"""

from typing import Dict, Iterable, List

from surveylink.database import Respondent
from surveylink.normalize import is_blank


def group_by_cohort(respondents: Iterable[Respondent]) -> Dict[str, List[Respondent]]:
    """Cohort -> respondents eligible for automatic matching, input order kept."""
    pools: Dict[str, List[Respondent]] = {}
    for person in respondents:
        if person.requires_manual_match:
            continue
        pools.setdefault(person.cohort, []).append(person)
    return pools


def email_candidates(pool: Iterable[Respondent]) -> List[Respondent]:
    return [p for p in pool if not is_blank(p.normalized_email)]


def name_candidates(pool: Iterable[Respondent]) -> List[Respondent]:
    return [p for p in pool if not is_blank(p.display_name)]


def remaining(pool: Iterable[Respondent], matched_ids: set) -> List[Respondent]:
    """The pool minus respondents already paired during this run."""
    return [p for p in pool if p.id not in matched_ids]
