"""
Person Repository.

Responsibilities:
- Store and retrieve respondent identity rows.
- Answer the "unmatched" queries the matching engine starts from.

Non-Responsibilities:
- No matching decisions.
- No commit; the caller owns the transaction.

Invariant:
Results are ordered by id so matching runs are reproducible.
"""

from typing import List, Optional

from sqlalchemy import select

from surveylink.database import Pairing, Respondent, SurveySide
from surveylink.errors import StorageError

from .base import BaseRepository


class PersonRepository(BaseRepository):

    def insert(self, respondent: Respondent) -> Respondent:
        with self._storage_errors("insert respondent"):
            self.session.add(respondent)
            self.session.flush()
        if respondent.id is None:
            raise StorageError("Respondent insert did not generate an id")
        return respondent

    def find_by_id(self, respondent_id: int) -> Optional[Respondent]:
        with self._storage_errors(f"load respondent {respondent_id}"):
            return self.session.get(Respondent, respondent_id)

    def find_all(self, side: SurveySide) -> List[Respondent]:
        with self._storage_errors(f"list {side.value} respondents"):
            stmt = select(Respondent).where(Respondent.survey_side == side).order_by(Respondent.id)
            return list(self.session.scalars(stmt))

    def find_by_cohort_and_side(self, cohort: str, side: SurveySide) -> List[Respondent]:
        with self._storage_errors(f"list {side.value} respondents in {cohort}"):
            stmt = (
                select(Respondent)
                .where(Respondent.cohort == cohort, Respondent.survey_side == side)
                .order_by(Respondent.id)
            )
            return list(self.session.scalars(stmt))

    def find_unmatched(self, side: SurveySide) -> List[Respondent]:
        """Respondents of ``side`` that no pairing references yet."""
        paired_column = Pairing.before_id if side is SurveySide.BEFORE else Pairing.after_id
        with self._storage_errors(f"list unmatched {side.value} respondents"):
            stmt = (
                select(Respondent)
                .where(Respondent.survey_side == side)
                .where(Respondent.id.not_in(select(paired_column)))
                .order_by(Respondent.id)
            )
            return list(self.session.scalars(stmt))

    def find_cohorts(self) -> List[str]:
        with self._storage_errors("list cohorts"):
            stmt = select(Respondent.cohort).distinct().order_by(Respondent.cohort)
            return list(self.session.scalars(stmt))

