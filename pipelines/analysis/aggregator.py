"""
Change-Metrics Aggregation.

Responsibilities:
- Join each pairing to its BEFORE and AFTER responses.
- Compute per-respondent, per-situation and per-cohort confidence changes.

Non-Responsibilities:
- No matching.
- No presentation; values are Decimals or None, never formatted strings.

Invariant:
Every average is taken over present values only and rounded to two places
half-up. An average over nothing is None, so "no responses" stays distinct
from "average is exactly 0".
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from surveylink.database import AfterResponse, BeforeResponse, Pairing, SurveySide
from surveylink.logger import get_logger
from surveylink.schema import SITUATIONS
from surveylink.stats import average_present, difference
from storage.repositories import MatchRepository, PersonRepository, ResponseRepository

logger = get_logger()

UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class SituationChange:
    situation: str
    before_value: Optional[int]
    after_value: Optional[int]
    delta: Optional[Decimal]
    before_understanding: Optional[int] = None


@dataclass(frozen=True)
class MatchedPairMetrics:
    cohort: str
    respondent_name: str
    origin: str
    before_value: Optional[Decimal]
    after_value: Optional[Decimal]
    delta: Optional[Decimal]
    before_understanding: Optional[Decimal]
    situations: List[SituationChange] = field(default_factory=list)
    speaking_change: Optional[Decimal] = None


@dataclass(frozen=True)
class SituationSummary:
    situation: str
    avg_speaking_change: Optional[Decimal]
    avg_before_understanding: Optional[Decimal]


@dataclass(frozen=True)
class CohortSummary:
    cohort: str
    pairs: int
    avg_confidence_change: Optional[Decimal]


@dataclass(frozen=True)
class AnalysisResult:
    before_count: int
    after_count: int
    pairing_count: int
    cohorts: List[str]
    avg_before_speaking: Optional[Decimal]
    avg_before_understanding: Optional[Decimal]
    avg_after_speaking: Optional[Decimal]
    avg_confidence_change: Optional[Decimal]
    total_speaking_change: Optional[Decimal]
    matched_pairs: List[MatchedPairMetrics]
    situations: List[SituationSummary]
    cohort_summaries: List[CohortSummary]

    @property
    def matched_count(self) -> int:
        return len(self.matched_pairs)


def situation_changes(before: BeforeResponse, after: AfterResponse) -> List[SituationChange]:
    changes = []
    for situation in SITUATIONS:
        before_value = before.speaking_value(situation)
        after_value = after.speaking_value(situation)
        changes.append(SituationChange(
            situation=situation,
            before_value=before_value,
            after_value=after_value,
            delta=difference(after_value, before_value),
            before_understanding=before.understanding_value(situation),
        ))
    return changes


class ChangeMetricsAggregator:
    """Builds an AnalysisResult from the current store contents."""

    def __init__(self, persons: PersonRepository, matches: MatchRepository, responses: ResponseRepository):
        self.persons = persons
        self.matches = matches
        self.responses = responses

    def analyze(self) -> AnalysisResult:
        logger.info("Running survey analysis")

        before_people = self.persons.find_all(SurveySide.BEFORE)
        after_people = self.persons.find_all(SurveySide.AFTER)
        pairings = self.matches.find_all()

        before_responses = self.responses.find_all(SurveySide.BEFORE)
        after_responses = self.responses.find_all(SurveySide.AFTER)

        matched_pairs = []
        for pairing in pairings:
            metrics = self._pair_metrics(pairing)
            if metrics is not None:
                matched_pairs.append(metrics)

        cohorts = self.persons.find_cohorts()
        result = AnalysisResult(
            before_count=len(before_people),
            after_count=len(after_people),
            pairing_count=len(pairings),
            cohorts=cohorts,
            avg_before_speaking=average_present(r.avg_speaking_confidence for r in before_responses),
            avg_before_understanding=average_present(r.avg_understanding_confidence for r in before_responses),
            avg_after_speaking=average_present(r.avg_speaking_ability for r in after_responses),
            avg_confidence_change=average_present(m.delta for m in matched_pairs),
            total_speaking_change=average_present(
                change.delta for m in matched_pairs for change in m.situations
            ),
            matched_pairs=matched_pairs,
            situations=self._situation_summaries(matched_pairs),
            cohort_summaries=self._cohort_summaries(cohorts, matched_pairs),
        )

        logger.info(
            "Analysis complete",
            before=result.before_count,
            after=result.after_count,
            pairings=result.pairing_count,
            matched=result.matched_count,
            avg_change=result.avg_confidence_change,
        )
        return result

    def _pair_metrics(self, pairing: Pairing) -> Optional[MatchedPairMetrics]:
        before = self.responses.find_by_respondent_id(pairing.before_id, SurveySide.BEFORE)
        after = self.responses.find_by_respondent_id(pairing.after_id, SurveySide.AFTER)
        if before is None or after is None:
            logger.debug("Pairing has a missing response, excluded from metrics", pairing_id=pairing.id)
            return None

        before_value = before.avg_speaking_confidence
        after_value = after.avg_speaking_ability
        changes = situation_changes(before, after)

        person = self.persons.find_by_id(pairing.before_id)
        name = person.display_name if person is not None and person.display_name else UNKNOWN_NAME

        return MatchedPairMetrics(
            cohort=pairing.cohort,
            respondent_name=name,
            origin=pairing.origin.value,
            before_value=before_value,
            after_value=after_value,
            delta=difference(after_value, before_value),
            before_understanding=before.avg_understanding_confidence,
            situations=changes,
            speaking_change=average_present(c.delta for c in changes),
        )

    def _situation_summaries(self, matched_pairs: List[MatchedPairMetrics]) -> List[SituationSummary]:
        summaries = []
        for index, situation in enumerate(SITUATIONS):
            summaries.append(SituationSummary(
                situation=situation,
                avg_speaking_change=average_present(m.situations[index].delta for m in matched_pairs),
                avg_before_understanding=average_present(
                    m.situations[index].before_understanding for m in matched_pairs
                ),
            ))
        return summaries

    def _cohort_summaries(self, cohorts: List[str], matched_pairs: List[MatchedPairMetrics]) -> List[CohortSummary]:
        by_cohort: Dict[str, List[MatchedPairMetrics]] = {}
        for metrics in matched_pairs:
            by_cohort.setdefault(metrics.cohort, []).append(metrics)
        return [
            CohortSummary(
                cohort=cohort,
                pairs=len(by_cohort[cohort]),
                avg_confidence_change=average_present(m.delta for m in by_cohort[cohort]),
            )
            for cohort in cohorts
            if cohort in by_cohort
        ]
