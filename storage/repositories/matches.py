"""
Match Repository.

Responsibilities:
- Store and retrieve pairing rows.
- Existence checks and per-origin counts.

Non-Responsibilities:
- No matching decisions.
- No commit; the caller owns the transaction.

Invariant:
At most one pairing per (before_id, after_id).
"""

from dataclasses import dataclass
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from surveylink.database import MatchOrigin, Pairing
from surveylink.errors import Conflict, StorageError

from .base import BaseRepository


@dataclass(frozen=True)
class MatchStatistics:
    total: int
    auto_email: int
    auto_name: int
    manual: int


class MatchRepository(BaseRepository):

    def exists(self, before_id: int, after_id: int) -> bool:
        with self._storage_errors("check pairing existence"):
            stmt = (
                select(Pairing.id)
                .where(Pairing.before_id == before_id, Pairing.after_id == after_id)
                .limit(1)
            )
            return self.session.scalar(stmt) is not None

    def insert(self, pairing: Pairing) -> Pairing:
        if self.exists(pairing.before_id, pairing.after_id):
            raise Conflict(
                f"Pairing already exists for before={pairing.before_id} after={pairing.after_id}"
            )
        try:
            # Savepoint: a failed insert must not discard the caller's pending work
            with self.session.begin_nested():
                self.session.add(pairing)
        except IntegrityError as e:
            if self.exists(pairing.before_id, pairing.after_id):
                raise Conflict(
                    f"Pairing already exists for before={pairing.before_id} after={pairing.after_id}"
                ) from e
            raise StorageError(f"Failed to insert pairing: {e}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert pairing: {e}") from e
        return pairing

    def find_all(self) -> List[Pairing]:
        with self._storage_errors("list pairings"):
            stmt = select(Pairing).order_by(Pairing.cohort, Pairing.matched_at, Pairing.id)
            return list(self.session.scalars(stmt))

    def find_by_cohort(self, cohort: str) -> List[Pairing]:
        with self._storage_errors(f"list pairings in {cohort}"):
            stmt = select(Pairing).where(Pairing.cohort == cohort).order_by(Pairing.matched_at, Pairing.id)
            return list(self.session.scalars(stmt))

    def count_by_origin(self, origin: MatchOrigin) -> int:
        with self._storage_errors(f"count {origin.value} pairings"):
            stmt = select(func.count(Pairing.id)).where(Pairing.origin == origin)
            return self.session.scalar(stmt) or 0

    def statistics(self) -> MatchStatistics:
        auto_email = self.count_by_origin(MatchOrigin.AUTO_EMAIL)
        auto_name = self.count_by_origin(MatchOrigin.AUTO_NAME)
        manual = self.count_by_origin(MatchOrigin.MANUAL)
        return MatchStatistics(
            total=auto_email + auto_name + manual,
            auto_email=auto_email,
            auto_name=auto_name,
            manual=manual,
        )
