#!/usr/bin/env python3
"""
Validate that every stored manual override still resolves against the database.

Usage:
    python scripts/validate_overrides.py --overrides data/manual_matches.properties --db data/surveys.db
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from surveylink.database import BeforeResponse, AfterResponse, Respondent, SurveySide, get_session
from storage.manual_overrides import ManualOverrideStore, key_for


def _content_keys(session, side: SurveySide, model):
    keys = {}
    rows = (
        session.query(Respondent, model)
        .outerjoin(model, model.respondent_id == Respondent.id)
        .filter(Respondent.survey_side == side)
        .all()
    )
    for person, response in rows:
        timestamp = response.timestamp if response is not None else None
        keys[key_for(person.cohort, timestamp, person.normalized_email, person.display_name)] = person
    return keys


def validate(overrides_path: Path, db_path: Path) -> bool:
    """
    Check that both sides of each override exist in the database.

    Returns True if every entry resolves, False otherwise.
    """
    print(f"Loading overrides from {overrides_path}...")
    store = ManualOverrideStore(overrides_path)
    entries = store.all_entries()
    print(f"  Overrides: {len(entries)}")

    print(f"\nQuerying database at {db_path}...")
    session = get_session(db_path)
    try:
        before_keys = _content_keys(session, SurveySide.BEFORE, BeforeResponse)
        after_keys = _content_keys(session, SurveySide.AFTER, AfterResponse)
    finally:
        session.close()
    print(f"  DB: {len(before_keys)} before, {len(after_keys)} after respondents")

    unresolved = []
    for entry in entries:
        before_key = key_for(entry.before_cohort, entry.before_timestamp, entry.before_email, entry.before_name)
        after_key = key_for(entry.after_cohort, entry.after_timestamp, entry.after_email, entry.after_name)
        missing = []
        if before_key not in before_keys:
            missing.append("before")
        if after_key not in after_keys:
            missing.append("after")
        if missing:
            unresolved.append((entry, missing))

    if unresolved:
        print(f"\nUNRESOLVED: {len(unresolved)} overrides")
        for entry, missing in unresolved[:5]:
            print(f"   - {entry.key} (missing {', '.join(missing)})")
        if len(unresolved) > 5:
            print(f"   ... and {len(unresolved) - 5} more")
        return False

    print("\nAll overrides resolve against the database.")
    return True


def main():
    parser = argparse.ArgumentParser(description="Validate stored manual overrides against the database")
    parser.add_argument("--overrides", type=Path, default=Path("data/manual_matches.properties"),
                        help="Path to manual overrides file")
    parser.add_argument("--db", type=Path, default=Path("data/surveys.db"),
                        help="Path to SQLite database file")

    args = parser.parse_args()

    if not args.overrides.exists():
        print(f"Overrides file not found: {args.overrides}")
        sys.exit(1)

    if not args.db.exists():
        print(f"Database file not found: {args.db}")
        sys.exit(1)

    success = validate(args.overrides, args.db)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
