"""
Response Repository.

Responsibilities:
- Store and retrieve BEFORE and AFTER questionnaire responses.
- Answer the ingestion guard's "already imported?" question.

Non-Responsibilities:
- No score calculations.
- No commit; the caller owns the transaction.

Invariant:
A response is always stored against an existing respondent id.
"""

from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import or_, select

from surveylink.database import AfterResponse, BeforeResponse, Respondent, SurveySide
from surveylink.errors import StorageError
from surveylink.normalize import is_blank, normalize_email

from .base import BaseRepository

Response = Union[BeforeResponse, AfterResponse]


def response_model(side: SurveySide):
    return BeforeResponse if side is SurveySide.BEFORE else AfterResponse


class ResponseRepository(BaseRepository):

    def insert(self, response: Response) -> Response:
        if response.respondent_id is None:
            raise StorageError("Response has no respondent id; respondent insert must come first")
        with self._storage_errors("insert response"):
            self.session.add(response)
            self.session.flush()
        return response

    def find_by_respondent_id(self, respondent_id: int, side: SurveySide) -> Optional[Response]:
        model = response_model(side)
        with self._storage_errors(f"load {side.value} response for respondent {respondent_id}"):
            stmt = select(model).where(model.respondent_id == respondent_id)
            return self.session.scalars(stmt).first()

    def find_all(self, side: SurveySide) -> List[Response]:
        model = response_model(side)
        with self._storage_errors(f"list {side.value} responses"):
            return list(self.session.scalars(select(model).order_by(model.id)))

    def exists(
        self,
        side: SurveySide,
        cohort: str,
        timestamp: Optional[datetime],
        name: Optional[str],
        normalized_email: Optional[str],
    ) -> bool:
        """
        True if a response of ``side`` already exists for the same cohort and
        timestamp whose respondent has the same name or the same email.
        """
        identity = []
        if not is_blank(name):
            identity.append(Respondent.display_name == name.strip())
        email = normalize_email(normalized_email)
        if email:
            identity.append(Respondent.normalized_email == email)
        if not identity:
            return False

        model = response_model(side)
        ts_clause = model.timestamp.is_(None) if timestamp is None else model.timestamp == timestamp
        with self._storage_errors("check response existence"):
            stmt = (
                select(model.id)
                .join(Respondent, Respondent.id == model.respondent_id)
                .where(Respondent.cohort == cohort.strip())
                .where(Respondent.survey_side == side)
                .where(ts_clause)
                .where(or_(*identity))
                .limit(1)
            )
            return self.session.scalar(stmt) is not None
