"""
Shared plumbing for SQLAlchemy repositories.

Invariant:
No SQLAlchemy exception escapes a repository; callers only ever see the
surveylink error taxonomy.
"""

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from surveylink.errors import StorageError


class BaseRepository:
    def __init__(self, session):
        self.session = session

    @contextmanager
    def _storage_errors(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to {action}: {e}") from e
