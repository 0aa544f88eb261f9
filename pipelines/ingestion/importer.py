"""
Survey Import Pipeline.

Responsibilities:
- Turn parsed survey rows into Respondent + Response pairs.
- Skip rows already imported, so re-importing a spreadsheet (or an
  overlapping one) creates no duplicate identities.

Non-Responsibilities:
- No spreadsheet cell parsing; rows arrive already parsed.
- No matching.

Invariant:
A row is either fully stored (respondent and response) or not at all. One
bad row never aborts the rest of the file.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from surveylink.database import AfterResponse, BeforeResponse, Respondent, SurveySide
from surveylink.errors import InvalidArgument, StorageError
from surveylink.logger import get_logger
from surveylink.normalize import normalize_email
from surveylink.schema import validate_row
from storage.repositories import PersonRepository, ResponseRepository

logger = get_logger()


@dataclass
class ImportResult:
    imported: int = 0
    duplicates: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.imported + self.duplicates + self.failed


def parse_row_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    return datetime.fromisoformat(text)


def _scores(row: Dict[str, Any], group: str) -> Dict[str, int]:
    return {k: v for k, v in (row.get(group) or {}).items() if v is not None}


class SurveyImporter:
    """Idempotent importer. Commits once per row."""

    def __init__(
        self,
        session,
        persons: Optional[PersonRepository] = None,
        responses: Optional[ResponseRepository] = None,
    ):
        self.session = session
        self.persons = persons or PersonRepository(session)
        self.responses = responses or ResponseRepository(session)

    def import_rows(
        self,
        side: SurveySide,
        rows: Iterable[Dict[str, Any]],
        source_file: Optional[str] = None,
    ) -> ImportResult:
        """
        Import parsed rows for one survey side.

        Args:
            side: SurveySide.BEFORE or SurveySide.AFTER
            rows: Parsed rows (cohort, timestamp, email, name, score mappings)
            source_file: Name recorded on each stored response

        Returns:
            ImportResult with imported / duplicate / failed counts
        """
        result = ImportResult()
        side_name = side.value.lower()

        for index, row in enumerate(rows, start=1):
            row_number = (row.get("row_number") if isinstance(row, dict) else None) or index
            errors = validate_row(row, side_name)
            if errors:
                logger.warning("Skipping invalid row", row=row_number, source=source_file, errors=errors)
                logger.record_import_failure("ValidationError")
                result.failed += 1
                continue

            cohort = row["cohort"].strip()
            timestamp = parse_row_timestamp(row.get("timestamp"))
            name = row.get("name")
            email = row.get("email")

            if self.responses.exists(side, cohort, timestamp, name, normalize_email(email)):
                logger.debug("Row already imported", row=row_number, cohort=cohort, name=name)
                logger.record_duplicate()
                result.duplicates += 1
                continue

            try:
                respondent = self.persons.insert(Respondent.create(cohort, side, email=email, name=name))
                self.responses.insert(self._build_response(side, respondent, timestamp, row, source_file, row_number))
                self.session.commit()
            except (StorageError, SQLAlchemyError) as e:
                self.session.rollback()
                logger.warning("Error importing row", row=row_number, source=source_file, error=str(e))
                logger.record_import_failure(type(e).__name__)
                result.failed += 1
                continue

            logger.record_import()
            result.imported += 1

        logger.info(
            f"Imported {result.imported} {side_name}-survey records",
            source=source_file,
            duplicates=result.duplicates,
            failed=result.failed,
        )
        return result

    def import_file(self, side: SurveySide, path: Path) -> ImportResult:
        """Import a JSON file holding a list of parsed rows."""
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            rows = json.load(f)
        if not isinstance(rows, list):
            raise InvalidArgument(f"{path} must contain a JSON list of survey rows")
        return self.import_rows(side, rows, source_file=path.name)

    def _build_response(self, side, respondent, timestamp, row, source_file, row_number):
        if respondent.id is None:
            raise StorageError("Respondent id unavailable; refusing to store an orphan response")
        common = dict(
            respondent_id=respondent.id,
            timestamp=timestamp,
            source_file=source_file or row.get("source_file"),
            row_number=row_number,
        )
        if side is SurveySide.BEFORE:
            return BeforeResponse(
                speaking=_scores(row, "speaking"),
                understanding=_scores(row, "understanding"),
                **common,
            )
        return AfterResponse(speaking=_scores(row, "speaking"), **common)
