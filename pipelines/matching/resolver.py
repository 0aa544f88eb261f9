"""
Matching Orchestrator.

Responsibilities:
- Run the two automatic phases (exact email, then fuzzy name) per cohort.
- Record manual pairings and replay stored manual overrides.
- Expose unmatched lists and pairing statistics to operator tooling.

Non-Responsibilities:
- No commit; the caller's session scope owns the transaction, so a failed
  run leaves no half-matched cohort behind.
- No feature computation.

Invariant:
Automatic pairings never cross cohorts and never reuse a respondent within a
run. Given the same unmatched pools in the same order, the same pairings are
produced.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from surveylink.database import MatchOrigin, Pairing, Respondent, SurveySide, SYSTEM_USER
from surveylink.errors import InvalidArgument, NotFound
from surveylink.logger import get_logger
from storage.manual_overrides import ManualOverrideStore, key_for
from storage.repositories import MatchRepository, MatchStatistics, PersonRepository, ResponseRepository

from .candidate_selector import email_candidates, group_by_cohort, name_candidates, remaining
from .scoring import NAME_SIMILARITY_THRESHOLD, best_name_match, first_email_match

logger = get_logger()


@dataclass(frozen=True)
class MatchResult:
    email_matches: int
    name_matches: int

    @property
    def total_matches(self) -> int:
        return self.email_matches + self.name_matches


class MatchingEngine:
    """Pairs BEFORE and AFTER respondents. Repositories are injected."""

    def __init__(
        self,
        persons: PersonRepository,
        matches: MatchRepository,
        responses: Optional[ResponseRepository] = None,
        overrides: Optional[ManualOverrideStore] = None,
        name_threshold: float = NAME_SIMILARITY_THRESHOLD,
    ):
        self.persons = persons
        self.matches = matches
        self.responses = responses
        self.overrides = overrides
        self.name_threshold = name_threshold

    # Automatic matching

    def run_auto_match(self) -> MatchResult:
        """
        Pair every unmatched respondent that can be paired automatically.

        Returns:
            MatchResult with the number of pairings inserted per phase
        """
        before_people = self.persons.find_unmatched(SurveySide.BEFORE)
        after_people = self.persons.find_unmatched(SurveySide.AFTER)
        logger.info(
            "Running automatic matching",
            unmatched_before=len(before_people),
            unmatched_after=len(after_people),
        )

        before_by_cohort = group_by_cohort(before_people)
        after_by_cohort = group_by_cohort(after_people)

        email_matches = 0
        name_matches = 0
        for cohort, before_pool in before_by_cohort.items():
            after_pool = after_by_cohort.get(cohort, [])
            if not after_pool:
                continue
            by_email, by_name = self._match_cohort(cohort, before_pool, after_pool)
            email_matches += by_email
            name_matches += by_name

        result = MatchResult(email_matches=email_matches, name_matches=name_matches)
        logger.info(
            f"Created {email_matches} email matches and {name_matches} name matches",
            total=result.total_matches,
        )
        return result

    def _match_cohort(
        self, cohort: str, before_pool: List[Respondent], after_pool: List[Respondent]
    ) -> Tuple[int, int]:
        matched: Set[int] = set()
        email_matches = 0
        name_matches = 0

        for before in email_candidates(before_pool):
            partner = first_email_match(before, remaining(after_pool, matched))
            if partner is None:
                continue
            matched.update((before.id, partner.id))
            if self._create_pairing(cohort, before, partner, MatchOrigin.AUTO_EMAIL, 1.0):
                email_matches += 1

        for before in name_candidates(remaining(before_pool, matched)):
            candidates = name_candidates(remaining(after_pool, matched))
            found = best_name_match(before, candidates, self.name_threshold)
            if found is None:
                continue
            partner, similarity = found
            matched.update((before.id, partner.id))
            if self._create_pairing(cohort, before, partner, MatchOrigin.AUTO_NAME, similarity):
                name_matches += 1

        return email_matches, name_matches

    def _create_pairing(
        self,
        cohort: str,
        before: Respondent,
        after: Respondent,
        origin: MatchOrigin,
        confidence: float,
    ) -> bool:
        if self.matches.exists(before.id, after.id):
            logger.debug("Pairing already exists", before_id=before.id, after_id=after.id)
            return False

        self.matches.insert(Pairing(
            cohort=cohort,
            before_id=before.id,
            after_id=after.id,
            origin=origin,
            confidence=confidence,
            matched_at=datetime.now(),
            matched_by=SYSTEM_USER,
        ))
        logger.record_match(origin.value)
        logger.debug(
            f"Created {origin.value} pairing",
            before=before.display_name,
            after=after.display_name,
            confidence=confidence,
        )
        return True

    # Manual matching

    def create_manual_pairing(
        self,
        before_id: int,
        after_id: int,
        created_by: Optional[str],
        notes: Optional[str] = None,
    ) -> Pairing:
        """
        Pair two respondents on an operator's say-so.

        Existing automatic pairings for either id are left alone. When the
        engine has an override store, the pairing is also written there so it
        survives a rebuild.

        Raises:
            NotFound: if either id is unknown
            InvalidArgument: if the ids are on the wrong survey sides
            Conflict: if this exact pair is already paired
        """
        before = self.persons.find_by_id(before_id)
        if before is None:
            raise NotFound(f"Before-survey respondent not found: {before_id}")
        after = self.persons.find_by_id(after_id)
        if after is None:
            raise NotFound(f"After-survey respondent not found: {after_id}")

        if before.survey_side is not SurveySide.BEFORE:
            raise InvalidArgument(f"Respondent {before_id} is not a before-survey respondent")
        if after.survey_side is not SurveySide.AFTER:
            raise InvalidArgument(f"Respondent {after_id} is not an after-survey respondent")

        pairing = self.matches.insert(Pairing(
            cohort=before.cohort,
            before_id=before.id,
            after_id=after.id,
            origin=MatchOrigin.MANUAL,
            confidence=None,
            matched_at=datetime.now(),
            matched_by=created_by,
            notes=notes,
        ))
        logger.record_match(MatchOrigin.MANUAL.value)
        logger.info(
            "Created manual pairing",
            before=before.display_name,
            after=after.display_name,
            matched_by=created_by,
        )

        if self.overrides is not None:
            self.overrides.save(
                before, self._response_timestamp(before),
                after, self._response_timestamp(after),
                notes, created_by,
            )
        return pairing

    def apply_stored_overrides(self) -> int:
        """
        Replay stored manual overrides against the current respondents.

        Each BEFORE respondent's content key (cohort, response timestamp,
        email, name) is looked up in the override store; the AFTER side of a
        hit is resolved the same way. Entries that no longer resolve are
        logged and skipped.

        Returns:
            Number of manual pairings restored
        """
        if self.overrides is None:
            return 0

        after_index = self._content_index(SurveySide.AFTER)
        restored = 0
        for before in self.persons.find_all(SurveySide.BEFORE):
            entry = self.overrides.find_by_before_key(
                before.cohort,
                self._response_timestamp(before),
                before.normalized_email,
                before.display_name,
            )
            if entry is None:
                continue

            after_key = key_for(entry.after_cohort, entry.after_timestamp, entry.after_email, entry.after_name)
            after = after_index.get(after_key)
            if after is None:
                logger.warning(
                    "Stored manual override no longer resolves",
                    before=entry.before_name,
                    after=entry.after_name,
                    cohort=entry.after_cohort,
                )
                continue
            if self.matches.exists(before.id, after.id):
                continue

            self.matches.insert(Pairing(
                cohort=before.cohort,
                before_id=before.id,
                after_id=after.id,
                origin=MatchOrigin.MANUAL,
                confidence=None,
                matched_at=entry.created_at or datetime.now(),
                matched_by=entry.created_by or None,
                notes=entry.notes or None,
            ))
            logger.record_match(MatchOrigin.MANUAL.value)
            restored += 1

        logger.info(f"Restored {restored} manual pairing(s) from {self.overrides.path}")
        return restored

    def _content_index(self, side: SurveySide) -> Dict[str, Respondent]:
        index: Dict[str, Respondent] = {}
        for person in self.persons.find_all(side):
            key = key_for(
                person.cohort,
                self._response_timestamp(person),
                person.normalized_email,
                person.display_name,
            )
            index.setdefault(key, person)
        return index

    def _response_timestamp(self, person: Respondent) -> Optional[datetime]:
        if self.responses is None:
            return None
        response = self.responses.find_by_respondent_id(person.id, person.survey_side)
        return response.timestamp if response is not None else None

    # Read-only accessors

    def unmatched(self, side: SurveySide) -> List[Respondent]:
        return self.persons.find_unmatched(side)

    def statistics(self) -> MatchStatistics:
        return self.matches.statistics()
