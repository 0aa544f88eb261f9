import argparse
from dataclasses import replace
from pathlib import Path

from .env import load_env

from . import __version__
from .config import Settings
from .database import SurveySide, init_database, session_scope
from .errors import SurveyLinkError
from .logger import get_logger


def _fmt(value) -> str:
    return "n/a" if value is None else str(value)


def _side(name: str) -> SurveySide:
    return SurveySide.BEFORE if name == "before" else SurveySide.AFTER


def _engine(session, settings: Settings):
    from storage.manual_overrides import ManualOverrideStore
    from storage.repositories import MatchRepository, PersonRepository, ResponseRepository
    from pipelines.matching import MatchingEngine

    return MatchingEngine(
        PersonRepository(session),
        MatchRepository(session),
        ResponseRepository(session),
        ManualOverrideStore(settings.manual_overrides_path),
    )


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    init_database(settings.db_path)
    print(f"Database ready: {settings.db_path}")


def cmd_import(args: argparse.Namespace, settings: Settings) -> None:
    from pipelines.ingestion import SurveyImporter

    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    init_database(settings.db_path)
    with session_scope(settings.db_path) as session:
        result = SurveyImporter(session).import_file(_side(args.side), input_path)
    print(f"Done. imported={result.imported} duplicates={result.duplicates} failed={result.failed}")


def cmd_match(args: argparse.Namespace, settings: Settings) -> None:
    with session_scope(settings.db_path) as session:
        result = _engine(session, settings).run_auto_match()
    print(f"Email matches: {result.email_matches}")
    print(f"Name matches:  {result.name_matches}")
    print(f"Total new:     {result.total_matches}")


def cmd_manual_match(args: argparse.Namespace, settings: Settings) -> None:
    with session_scope(settings.db_path) as session:
        pairing = _engine(session, settings).create_manual_pairing(
            args.before, args.after, args.by, args.notes
        )
        print(f"Paired {pairing.before_id} -> {pairing.after_id} in cohort {pairing.cohort} (MANUAL)")


def cmd_unmatched(args: argparse.Namespace, settings: Settings) -> None:
    with session_scope(settings.db_path) as session:
        people = _engine(session, settings).unmatched(_side(args.side))
        if not people:
            print(f"No unmatched {args.side}-survey respondents.")
            return
        print(f"Found {len(people)} unmatched {args.side}-survey respondents:\n")
        for person in people:
            flag = "  [manual match required]" if person.requires_manual_match else ""
            print(f"ID: {person.id}{flag}")
            print(f"  Cohort: {person.cohort}")
            print(f"  Name: {person.display_name}")
            print(f"  Email: {person.normalized_email}")
            print()


def cmd_stats(args: argparse.Namespace, settings: Settings) -> None:
    with session_scope(settings.db_path) as session:
        stats = _engine(session, settings).statistics()
    print(f"Total pairings: {stats.total}")
    print(f"  AUTO_EMAIL: {stats.auto_email}")
    print(f"  AUTO_NAME:  {stats.auto_name}")
    print(f"  MANUAL:     {stats.manual}")


def cmd_analyze(args: argparse.Namespace, settings: Settings) -> None:
    from storage.repositories import MatchRepository, PersonRepository, ResponseRepository
    from pipelines.analysis import ChangeMetricsAggregator

    with session_scope(settings.db_path) as session:
        result = ChangeMetricsAggregator(
            PersonRepository(session), MatchRepository(session), ResponseRepository(session)
        ).analyze()

    print(f"Respondents: {result.before_count} before, {result.after_count} after")
    print(f"Pairings: {result.pairing_count} ({result.matched_count} with both responses)")
    print(f"Cohorts: {', '.join(result.cohorts) or 'none'}")
    print(f"Avg before speaking confidence:      {_fmt(result.avg_before_speaking)}")
    print(f"Avg before understanding confidence: {_fmt(result.avg_before_understanding)}")
    print(f"Avg after speaking ability:          {_fmt(result.avg_after_speaking)}")
    print(f"Avg confidence change:               {_fmt(result.avg_confidence_change)}")
    print(f"Total speaking change:               {_fmt(result.total_speaking_change)}")

    print("\nBy situation:")
    for summary in result.situations:
        print(f"  {summary.situation:<20} change={_fmt(summary.avg_speaking_change)} "
              f"understanding={_fmt(summary.avg_before_understanding)}")

    if result.cohort_summaries:
        print("\nBy cohort:")
        for summary in result.cohort_summaries:
            print(f"  {summary.cohort}: {summary.pairs} pair(s), change={_fmt(summary.avg_confidence_change)}")

    if args.pairs:
        print("\nMatched pairs:")
        for pair in result.matched_pairs:
            print(f"  [{pair.cohort}] {pair.respondent_name} ({pair.origin}): "
                  f"{_fmt(pair.before_value)} -> {_fmt(pair.after_value)} delta={_fmt(pair.delta)}")


def cmd_overrides(args: argparse.Namespace, settings: Settings) -> None:
    from storage.manual_overrides import ManualOverrideStore

    entries = ManualOverrideStore(settings.manual_overrides_path).all_entries()
    if not entries:
        print(f"No manual overrides in {settings.manual_overrides_path}")
        return
    print(f"Found {len(entries)} manual overrides:\n")
    for entry in entries:
        print(f"[{entry.before_cohort}] {entry.before_name or entry.before_email} -> "
              f"[{entry.after_cohort}] {entry.after_name or entry.after_email}")
        print(f"  By: {entry.created_by or 'unknown'} at {_fmt(entry.created_at)}")
        if entry.notes:
            print(f"  Notes: {entry.notes}")


def cmd_restore_overrides(args: argparse.Namespace, settings: Settings) -> None:
    with session_scope(settings.db_path) as session:
        restored = _engine(session, settings).apply_stored_overrides()
    print(f"Restored {restored} manual pairing(s).")


def cmd_rebuild(args: argparse.Namespace, settings: Settings) -> None:
    from pipelines.backfill.full_rebuild import full_rebuild

    summary = full_rebuild(settings)
    print("Rebuild complete:")
    for name, count in summary.items():
        print(f"  {name}: {count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="surveylink", description="Link pre/post survey respondents and measure change")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: $SURVEYLINK_DB or data/surveys.db)")
    parser.add_argument("--overrides", help="Path to manual overrides file (default: $SURVEYLINK_MANUAL_OVERRIDES)")

    subparsers = parser.add_subparsers(dest="command")

    init = subparsers.add_parser("init-db", help="Create the database tables")
    init.set_defaults(func=cmd_init_db)

    imp = subparsers.add_parser("import", help="Import a JSON export of parsed survey rows")
    imp.add_argument("--side", required=True, choices=["before", "after"], help="Survey side of the export")
    imp.add_argument("--input", required=True, help="Path to JSON list of rows")
    imp.set_defaults(func=cmd_import)

    mat = subparsers.add_parser("match", help="Run automatic email + name matching")
    mat.set_defaults(func=cmd_match)

    man = subparsers.add_parser("manual-match", help="Pair two respondents by id and remember it")
    man.add_argument("--before", required=True, type=int, help="Before-survey respondent id")
    man.add_argument("--after", required=True, type=int, help="After-survey respondent id")
    man.add_argument("--by", required=True, help="Operator name recorded on the pairing")
    man.add_argument("--notes", help="Optional notes")
    man.set_defaults(func=cmd_manual_match)

    unm = subparsers.add_parser("unmatched", help="List respondents without a pairing")
    unm.add_argument("--side", required=True, choices=["before", "after"], help="Survey side")
    unm.set_defaults(func=cmd_unmatched)

    sts = subparsers.add_parser("stats", help="Show pairing counts by origin")
    sts.set_defaults(func=cmd_stats)

    ana = subparsers.add_parser("analyze", help="Compute confidence change metrics")
    ana.add_argument("--pairs", action="store_true", help="Also print every matched pair")
    ana.set_defaults(func=cmd_analyze)

    ovr = subparsers.add_parser("overrides", help="List stored manual overrides")
    ovr.set_defaults(func=cmd_overrides)

    rst = subparsers.add_parser("restore-overrides", help="Replay stored manual overrides against the database")
    rst.set_defaults(func=cmd_restore_overrides)

    reb = subparsers.add_parser("rebuild", help="Recreate the database from exports, rematch, restore overrides")
    reb.set_defaults(func=cmd_rebuild)

    return parser


def main(argv=None):
    # Load .env if present (SURVEYLINK_DB, SURVEYLINK_MANUAL_OVERRIDES, etc.)
    load_env()
    args = build_parser().parse_args(argv)

    if args.version:
        print(__version__)
        return

    settings = Settings.from_env()
    if args.db:
        settings = replace(settings, db_path=Path(args.db))
    if args.overrides:
        settings = replace(settings, manual_overrides_path=Path(args.overrides))

    get_logger(level=settings.log_level, log_dir=settings.log_dir, enable_file=settings.log_to_file)

    if not hasattr(args, "func"):
        print("surveylink: choose a command, see --help.")
        return

    try:
        args.func(args, settings)
    except SurveyLinkError as e:
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
