"""
Full Rebuild Pipeline.

Responsibilities:
- Recreate the database from the source survey exports.
- Re-run automatic matching, then replay stored manual overrides.

Non-Responsibilities:
- No spreadsheet parsing; reads the parsed-row JSON exports.
- No edits to the manual-override file.

Invariant:
A full rebuild is idempotent and reproducible: the same exports and the
same override file always yield the same pairings.
"""

from pathlib import Path
from typing import Dict, List

from surveylink.config import Settings
from surveylink.database import SurveySide, reset_database, session_scope
from surveylink.logger import get_logger
from storage.manual_overrides import ManualOverrideStore
from storage.repositories import MatchRepository, PersonRepository, ResponseRepository
from pipelines.ingestion import ImportResult, SurveyImporter
from pipelines.matching import MatchingEngine

logger = get_logger()

SIDE_DIRECTORIES = [
    (SurveySide.BEFORE, "before"),
    (SurveySide.AFTER, "after"),
]


def export_files(directory: Path) -> List[Path]:
    if not directory.exists():
        logger.warning("Directory not found, skipping import", path=str(directory))
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".json")


def import_directory(importer: SurveyImporter, side: SurveySide, directory: Path) -> ImportResult:
    total = ImportResult()
    files = export_files(directory)
    logger.info(f"Found {len(files)} export file(s)", side=side.value, path=str(directory))
    for path in files:
        result = importer.import_file(side, path)
        total.imported += result.imported
        total.duplicates += result.duplicates
        total.failed += result.failed
    return total


def full_rebuild(settings: Settings) -> Dict[str, int]:
    """
    Drop everything, reimport, rematch and restore manual pairings.

    Returns:
        Summary counts for each step
    """
    logger.info("=== Step 1: Recreating database ===", path=str(settings.db_path))
    reset_database(settings.db_path)

    summary: Dict[str, int] = {}
    with session_scope(settings.db_path) as session:
        logger.info("=== Step 2: Importing surveys ===")
        importer = SurveyImporter(session)
        for side, folder in SIDE_DIRECTORIES:
            result = import_directory(importer, side, settings.data_dir / folder)
            prefix = side.value.lower()
            summary[f"{prefix}_imported"] = result.imported
            summary[f"{prefix}_duplicates"] = result.duplicates
            summary[f"{prefix}_failed"] = result.failed

        engine = MatchingEngine(
            PersonRepository(session),
            MatchRepository(session),
            ResponseRepository(session),
            ManualOverrideStore(settings.manual_overrides_path),
        )

        logger.info("=== Step 3: Running automatic matching ===")
        match_result = engine.run_auto_match()
        summary["email_matches"] = match_result.email_matches
        summary["name_matches"] = match_result.name_matches

        logger.info("=== Step 4: Restoring manual matches ===")
        summary["manual_restored"] = engine.apply_stored_overrides()

    logger.info("=== Rebuild complete ===", **summary)
    logger.log_metrics_summary()
    return summary
