"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing into logs/
os.environ.setdefault("SURVEYLINK_LOG_TO_FILE", "0")

import pytest
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from surveylink.database import (
    AfterResponse,
    BeforeResponse,
    Respondent,
    SurveySide,
    get_session,
    init_database,
)
from storage.manual_overrides import ManualOverrideStore
from storage.repositories import MatchRepository, PersonRepository, ResponseRepository


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Create an empty database and return its path."""
    path = tmp_path / "surveys.db"
    init_database(path)
    return path


@pytest.fixture
def db_session(db_path):
    """Session on a fresh temporary database."""
    session = get_session(db_path)
    yield session
    session.close()


@pytest.fixture
def persons(db_session) -> PersonRepository:
    return PersonRepository(db_session)


@pytest.fixture
def matches(db_session) -> MatchRepository:
    return MatchRepository(db_session)


@pytest.fixture
def responses(db_session) -> ResponseRepository:
    return ResponseRepository(db_session)


@pytest.fixture
def overrides_path(tmp_path) -> Path:
    return tmp_path / "manual_matches.properties"


@pytest.fixture
def override_store(overrides_path) -> ManualOverrideStore:
    return ManualOverrideStore(overrides_path)


@pytest.fixture
def seed(persons, responses):
    """
    Factory that stores one respondent plus its response.

    Usage: seed(SurveySide.BEFORE, "C1", name="Ana", email="a@x.org", speaking={...})
    """
    def _seed(
        side: SurveySide,
        cohort: str,
        name: str = None,
        email: str = None,
        timestamp: datetime = None,
        speaking: Dict[str, int] = None,
        understanding: Dict[str, int] = None,
        with_response: bool = True,
    ) -> Respondent:
        person = persons.insert(Respondent.create(cohort, side, email=email, name=name))
        if not with_response:
            return person
        if side is SurveySide.BEFORE:
            responses.insert(BeforeResponse(
                respondent_id=person.id,
                timestamp=timestamp,
                speaking=speaking or {},
                understanding=understanding or {},
            ))
        else:
            responses.insert(AfterResponse(
                respondent_id=person.id,
                timestamp=timestamp,
                speaking=speaking or {},
            ))
        return person

    return _seed


@pytest.fixture
def before_row() -> Dict[str, Any]:
    """A valid parsed pre-survey row."""
    return {
        "cohort": "C1",
        "timestamp": "2024-01-10T09:30:00",
        "email": "Ana.Silva@Example.org",
        "name": "Ana Silva",
        "row_number": 2,
        "speaking": {"directions": 2, "healthcare": 3},
        "understanding": {"directions": 3, "healthcare": 4},
    }


@pytest.fixture
def after_rows() -> List[Dict[str, Any]]:
    """Two valid parsed post-survey rows."""
    return [
        {
            "cohort": "C1",
            "timestamp": "2024-03-15T10:00:00",
            "email": "ana.silva@example.org",
            "name": "Ana Silva",
            "speaking": {"directions": 4, "healthcare": 4},
        },
        {
            "cohort": "C1",
            "timestamp": "2024-03-15T10:05:00",
            "email": None,
            "name": "Bruno Costa",
            "speaking": {"directions": 3},
        },
    ]
