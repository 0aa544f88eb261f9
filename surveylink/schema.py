from datetime import datetime
from typing import Any, Dict, List

SITUATIONS = [
    "directions",
    "healthcare",
    "authorities",
    "job_interview",
    "informal",
    "children_education",
    "landlord",
    "social_events",
    "local_services",
    "support_orgs",
    "shopping",
]

OPTIONAL_STR_FIELDS = ["email", "name", "source_file"]
SCORE_FIELDS = {
    "before": ["speaking", "understanding"],
    "after": ["speaking"],
}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_timestamp(v: Any) -> bool:
    if isinstance(v, datetime):
        return True
    if not isinstance(v, str):
        return False
    try:
        datetime.fromisoformat(v.strip())
        return True
    except ValueError:
        return False


def validate_row(data: Dict[str, Any], side: str) -> List[str]:
    """
    Returns a list of validation error messages for one parsed survey row.
    Empty list means valid.

    ``side`` is "before" or "after" and selects which score groups apply.
    """
    errors: List[str] = []

    if not isinstance(data, dict):
        return ["Row must be a mapping of field names to values"]

    if side not in SCORE_FIELDS:
        return [f"Unknown survey side: {side}"]

    if "cohort" not in data:
        errors.append("Missing required field: cohort")
    elif not _is_non_empty_str(data["cohort"]):
        errors.append("Field 'cohort' must be a non-empty string")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if not _is_non_empty_str(data.get("name")) and not _is_non_empty_str(data.get("email")):
        errors.append("Row needs a name or an email to identify the respondent")

    if data.get("timestamp") is not None and not _valid_timestamp(data["timestamp"]):
        errors.append("Field 'timestamp' must be an ISO-8601 date-time")

    if data.get("row_number") is not None and not isinstance(data["row_number"], int):
        errors.append("Field 'row_number' must be an integer if provided")

    for group in SCORE_FIELDS[side]:
        scores = data.get(group)
        if scores is None:
            continue
        if not isinstance(scores, dict):
            errors.append(f"Field '{group}' must be a mapping of situation to score")
            continue
        for situation, value in scores.items():
            if situation not in SITUATIONS:
                errors.append(f"Unknown situation in '{group}': {situation}")
            elif value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                errors.append(f"Score '{group}.{situation}' must be an integer")

    return errors
