"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for respondents, pairings and survey responses.
"""

import enum
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from sqlalchemy import (
    create_engine,
    event,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import StorageError
from .normalize import normalize_email, requires_manual_match
from .schema import SITUATIONS
from .stats import average_present

Base = declarative_base()


class SurveySide(enum.Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class MatchOrigin(enum.Enum):
    AUTO_EMAIL = "AUTO_EMAIL"
    AUTO_NAME = "AUTO_NAME"
    MANUAL = "MANUAL"


SYSTEM_USER = "SYSTEM"


class Respondent(Base):
    """One survey respondent on one side of a cohort."""

    __tablename__ = "respondent"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cohort = Column(String, nullable=False, index=True)
    survey_side = Column(Enum(SurveySide, native_enum=False, length=16), nullable=False)
    raw_email = Column(String, nullable=True)
    normalized_email = Column(String, nullable=False, default="")
    display_name = Column(String, nullable=True)
    requires_manual_match = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    @classmethod
    def create(cls, cohort: str, side: SurveySide, email: str = None, name: str = None) -> "Respondent":
        """Build a respondent with derived email and manual-match fields filled in."""
        cohort = cohort.strip()
        return cls(
            cohort=cohort,
            survey_side=side,
            raw_email=email,
            normalized_email=normalize_email(email),
            display_name=name.strip() if name else None,
            requires_manual_match=requires_manual_match(cohort),
            created_at=datetime.now(),
        )

    def __repr__(self):
        return (
            f"Respondent(id={self.id}, cohort={self.cohort!r}, side={self.survey_side.name if self.survey_side else None}, "
            f"name={self.display_name!r}, email={self.normalized_email!r})"
        )


class Pairing(Base):
    """Link between one BEFORE respondent and one AFTER respondent."""

    __tablename__ = "pairing"
    __table_args__ = (UniqueConstraint("before_id", "after_id", name="uq_pairing_before_after"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    cohort = Column(String, nullable=False, index=True)
    before_id = Column(Integer, ForeignKey("respondent.id"), nullable=False, index=True)
    after_id = Column(Integer, ForeignKey("respondent.id"), nullable=False, index=True)
    origin = Column(Enum(MatchOrigin, native_enum=False, length=16), nullable=False)
    confidence = Column(Float, nullable=True)
    matched_at = Column(DateTime, nullable=False, default=datetime.now)
    matched_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return (
            f"Pairing(id={self.id}, cohort={self.cohort!r}, before_id={self.before_id}, "
            f"after_id={self.after_id}, origin={self.origin.name if self.origin else None}, "
            f"confidence={self.confidence})"
        )


class BeforeResponse(Base):
    """Pre-survey answers. Scores are keyed by situation name."""

    __tablename__ = "before_response"

    id = Column(Integer, primary_key=True, autoincrement=True)
    respondent_id = Column(Integer, ForeignKey("respondent.id"), nullable=False, unique=True)
    timestamp = Column(DateTime, nullable=True, index=True)
    source_file = Column(String, nullable=True)
    row_number = Column(Integer, nullable=True)
    speaking = Column(JSON, nullable=False, default=dict)
    understanding = Column(JSON, nullable=False, default=dict)

    def speaking_value(self, situation: str):
        return (self.speaking or {}).get(situation)

    def understanding_value(self, situation: str):
        return (self.understanding or {}).get(situation)

    @property
    def avg_speaking_confidence(self):
        return average_present(self.speaking_value(s) for s in SITUATIONS)

    @property
    def avg_understanding_confidence(self):
        return average_present(self.understanding_value(s) for s in SITUATIONS)


class AfterResponse(Base):
    """Post-survey answers. Scores are keyed by situation name."""

    __tablename__ = "after_response"

    id = Column(Integer, primary_key=True, autoincrement=True)
    respondent_id = Column(Integer, ForeignKey("respondent.id"), nullable=False, unique=True)
    timestamp = Column(DateTime, nullable=True, index=True)
    source_file = Column(String, nullable=True)
    row_number = Column(Integer, nullable=True)
    speaking = Column(JSON, nullable=False, default=dict)

    def speaking_value(self, situation: str):
        return (self.speaking or {}).get(situation)

    @property
    def avg_speaking_ability(self):
        return average_present(self.speaking_value(s) for s in SITUATIONS)


def _engine(db_path: Path):
    engine = create_engine(f"sqlite:///{db_path}")

    # SQLAlchemy, not pysqlite, emits BEGIN; SAVEPOINT depends on it
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.create_all(engine)


def reset_database(db_path: Path) -> None:
    """
    Drop and recreate every table. Used by the full rebuild.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = _engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()


@contextmanager
def session_scope(db_path: Path) -> Iterator:
    """
    Session bound to one logical transaction.

    Commits when the block exits normally, rolls back on any exception.
    SQLAlchemy failures at commit time surface as StorageError.
    """
    session = get_session(db_path)
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageError(f"Database transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
