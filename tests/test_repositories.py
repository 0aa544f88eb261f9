"""
Tests for the SQLAlchemy repositories.
"""

import pytest
from datetime import datetime

from surveylink.database import MatchOrigin, Pairing, Respondent, SurveySide
from surveylink.errors import Conflict, StorageError

BEFORE = SurveySide.BEFORE
AFTER = SurveySide.AFTER


def _pairing(cohort, before, after, origin=MatchOrigin.AUTO_NAME):
    return Pairing(
        cohort=cohort,
        before_id=before.id,
        after_id=after.id if after is not None else None,
        origin=origin,
        matched_at=datetime.now(),
    )


class TestPersonRepository:
    """Respondent queries."""

    def test_find_by_cohort_and_side(self, seed, persons):
        ana = seed(BEFORE, "C1", name="Ana")
        seed(AFTER, "C1", name="Ana")
        seed(BEFORE, "C2", name="Bea")
        zoe = seed(BEFORE, "C1", name="Zoe")

        found = persons.find_by_cohort_and_side("C1", BEFORE)

        assert [p.id for p in found] == [ana.id, zoe.id]

    def test_find_cohorts_sorted_and_distinct(self, seed, persons):
        seed(BEFORE, "C2", name="Bea")
        seed(AFTER, "C1", name="Ana")
        seed(BEFORE, "C1", name="Ana")

        assert persons.find_cohorts() == ["C1", "C2"]


class TestMatchRepository:
    """Pairing inserts and queries."""

    def test_find_by_cohort(self, seed, matches):
        b1 = seed(BEFORE, "C1", name="Ana")
        a1 = seed(AFTER, "C1", name="Ana")
        b2 = seed(BEFORE, "C2", name="Bea")
        a2 = seed(AFTER, "C2", name="Bea")
        matches.insert(_pairing("C1", b1, a1))
        matches.insert(_pairing("C2", b2, a2))

        found = matches.find_by_cohort("C1")

        assert [(p.before_id, p.after_id) for p in found] == [(b1.id, a1.id)]

    def test_insert_assigns_id(self, seed, matches):
        before = seed(BEFORE, "C1", name="Ana")
        after = seed(AFTER, "C1", name="Ana")

        pairing = matches.insert(_pairing("C1", before, after))

        assert pairing.id is not None

    def test_duplicate_raises_conflict_and_keeps_pending_work(self, seed, matches, db_session):
        before = seed(BEFORE, "C1", name="Ana")
        after = seed(AFTER, "C1", name="Ana")
        matches.insert(_pairing("C1", before, after))

        with pytest.raises(Conflict):
            matches.insert(_pairing("C1", before, after, MatchOrigin.MANUAL))

        assert db_session.query(Respondent).count() == 2
        assert len(matches.find_all()) == 1

    def test_failed_insert_keeps_callers_pending_work(self, seed, matches, db_session):
        """A constraint failure only undoes the pairing, not earlier flushed rows."""
        kept = seed(BEFORE, "C1", name="Ana")

        with pytest.raises(StorageError) as exc:
            matches.insert(_pairing("C1", kept, None))

        assert not isinstance(exc.value, Conflict)
        assert db_session.query(Respondent).count() == 1
        assert matches.find_all() == []

    def test_session_usable_after_failed_insert(self, seed, matches, db_session):
        kept = seed(BEFORE, "C1", name="Ana")
        with pytest.raises(StorageError):
            matches.insert(_pairing("C1", kept, None))

        after = seed(AFTER, "C1", name="Ana")
        matches.insert(_pairing("C1", kept, after))
        db_session.commit()

        assert len(matches.find_all()) == 1

    def test_statistics(self, seed, matches):
        b1 = seed(BEFORE, "C1", name="Ana")
        a1 = seed(AFTER, "C1", name="Ana")
        b2 = seed(BEFORE, "C1", name="Bea")
        matches.insert(_pairing("C1", b1, a1, MatchOrigin.AUTO_EMAIL))
        matches.insert(_pairing("C1", b2, a1, MatchOrigin.MANUAL))

        stats = matches.statistics()

        assert (stats.total, stats.auto_email, stats.auto_name, stats.manual) == (2, 1, 0, 1)
