from typing import Optional

from rapidfuzz.distance import Levenshtein

UNKNOWN_COHORT = "?"


def normalize_email(email: Optional[str]) -> str:
    """Lower-case and drop all whitespace. Blank input maps to ""."""
    if not email or not email.strip():
        return ""
    return "".join(email.lower().split())


def normalize_cohort(cohort: Optional[str]) -> str:
    return cohort.strip() if cohort else ""


def requires_manual_match(cohort: Optional[str]) -> bool:
    return normalize_cohort(cohort) == UNKNOWN_COHORT


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def name_similarity(name1: Optional[str], name2: Optional[str]) -> float:
    """
    Normalized edit-distance similarity between two names.

    Both names are trimmed and case-folded. Returns 1.0 for equal names,
    0.0 if either is empty, else 1 - levenshtein / max(len).
    """
    if name1 is None or name2 is None:
        return 0.0

    n1 = name1.strip().casefold()
    n2 = name2.strip().casefold()

    if not n1 or not n2:
        return 0.0
    if n1 == n2:
        return 1.0

    distance = Levenshtein.distance(n1, n2)
    return 1.0 - distance / max(len(n1), len(n2))
