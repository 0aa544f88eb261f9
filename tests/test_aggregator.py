"""
Tests for change-metrics aggregation, including the end-to-end matching flow.
"""

import pytest
from decimal import Decimal

from surveylink.database import MatchOrigin, SurveySide
from surveylink.schema import SITUATIONS
from pipelines.analysis import ChangeMetricsAggregator
from pipelines.matching import MatchingEngine

BEFORE = SurveySide.BEFORE
AFTER = SurveySide.AFTER


@pytest.fixture
def aggregator(persons, matches, responses):
    return ChangeMetricsAggregator(persons, matches, responses)


@pytest.fixture
def engine(persons, matches, responses):
    return MatchingEngine(persons, matches, responses)


class TestEndToEnd:
    """Cohort C1: one email pair, one fuzzy-name pair."""

    def test_cohort_scenario(self, seed, engine, matches, aggregator):
        a = seed(BEFORE, "C1", name="Anne", email="a@x.com",
                 speaking={"directions": 2, "healthcare": 2}, understanding={"directions": 3})
        b = seed(BEFORE, "C1", name="Jon Smith",
                 speaking={"directions": 1, "shopping": 3})
        a2 = seed(AFTER, "C1", name="Ann", email="a@x.com",
                  speaking={"directions": 4, "healthcare": 3})
        b2 = seed(AFTER, "C1", name="John Smith",
                  speaking={"directions": 3, "shopping": 3})

        result = engine.run_auto_match()

        assert (result.email_matches, result.name_matches) == (1, 1)
        pairings = {(p.before_id, p.after_id): p for p in matches.find_all()}
        assert pairings[(a.id, a2.id)].origin is MatchOrigin.AUTO_EMAIL
        assert pairings[(a.id, a2.id)].confidence == 1.0
        assert pairings[(b.id, b2.id)].origin is MatchOrigin.AUTO_NAME
        assert pairings[(b.id, b2.id)].confidence == pytest.approx(0.9)

        analysis = aggregator.analyze()

        assert analysis.before_count == 2
        assert analysis.after_count == 2
        assert analysis.pairing_count == 2
        assert analysis.matched_count == 2
        assert analysis.cohorts == ["C1"]

        by_name = {m.respondent_name: m for m in analysis.matched_pairs}
        anne = by_name["Anne"]
        assert anne.origin == "AUTO_EMAIL"
        assert anne.before_value == Decimal("2.00")
        assert anne.after_value == Decimal("3.50")
        assert anne.delta == Decimal("1.50")
        assert anne.before_understanding == Decimal("3.00")

        jon = by_name["Jon Smith"]
        assert jon.delta == Decimal("1.00")
        # directions +2, shopping 0
        assert jon.speaking_change == Decimal("1.00")

        assert analysis.avg_confidence_change == Decimal("1.25")
        assert analysis.cohort_summaries[0].pairs == 2
        assert analysis.cohort_summaries[0].avg_confidence_change == Decimal("1.25")


class TestAggregates:
    """Averages across responses and situations."""

    def test_empty_store(self, aggregator):
        result = aggregator.analyze()

        assert result.pairing_count == 0
        assert result.matched_pairs == []
        assert result.avg_before_speaking is None
        assert result.avg_confidence_change is None
        assert result.total_speaking_change is None
        assert all(s.avg_speaking_change is None for s in result.situations)

    def test_response_averages_include_unpaired(self, seed, aggregator):
        seed(BEFORE, "C1", name="Ana", speaking={"directions": 2}, understanding={"directions": 5})
        seed(BEFORE, "C2", name="Bea", speaking={"directions": 4}, understanding={"directions": 4})
        seed(AFTER, "C3", name="Cid", speaking={"directions": 5})

        result = aggregator.analyze()

        assert result.avg_before_speaking == Decimal("3.00")
        assert result.avg_before_understanding == Decimal("4.50")
        assert result.avg_after_speaking == Decimal("5.00")
        assert result.cohorts == ["C1", "C2", "C3"]

    def test_per_situation_summary(self, seed, engine, aggregator):
        seed(BEFORE, "C1", name="Ana", speaking={"landlord": 1}, understanding={"landlord": 2})
        seed(AFTER, "C1", name="Ana", speaking={"landlord": 4})
        seed(BEFORE, "C1", name="Bruno Costa", speaking={"landlord": 2, "shopping": 1})
        seed(AFTER, "C1", name="Bruno Costa", speaking={"landlord": 4})
        engine.run_auto_match()

        result = aggregator.analyze()
        situations = {s.situation: s for s in result.situations}

        assert [s.situation for s in result.situations] == SITUATIONS
        # (3 + 2) / 2
        assert situations["landlord"].avg_speaking_change == Decimal("2.50")
        assert situations["landlord"].avg_before_understanding == Decimal("2.00")
        # no after value for shopping, so no change
        assert situations["shopping"].avg_speaking_change is None
        assert situations["directions"].avg_speaking_change is None

    def test_pair_missing_response_excluded_from_metrics(self, seed, engine, aggregator):
        seed(BEFORE, "C1", name="Ana", speaking={"directions": 1})
        seed(AFTER, "C1", name="Ana", with_response=False)
        engine.run_auto_match()

        result = aggregator.analyze()

        assert result.pairing_count == 1
        assert result.matched_count == 0
        assert result.avg_confidence_change is None

    def test_missing_name_reported_as_unknown(self, seed, engine, aggregator):
        seed(BEFORE, "C1", email="ana@x.org", speaking={"directions": 1})
        seed(AFTER, "C1", email="ana@x.org", speaking={"directions": 2})
        engine.run_auto_match()

        result = aggregator.analyze()

        assert result.matched_pairs[0].respondent_name == "Unknown"
        assert result.matched_pairs[0].delta == Decimal("1.00")

    def test_no_answers_on_one_side_gives_no_delta(self, seed, engine, aggregator):
        seed(BEFORE, "C1", name="Ana", speaking={})
        seed(AFTER, "C1", name="Ana", speaking={"directions": 3})
        engine.run_auto_match()

        pair = aggregator.analyze().matched_pairs[0]

        assert pair.before_value is None
        assert pair.after_value == Decimal("3.00")
        assert pair.delta is None
