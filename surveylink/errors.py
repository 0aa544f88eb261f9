"""
Error taxonomy shared by repositories, the matching engine and the importer.
"""


class SurveyLinkError(Exception):
    """Base class for all surveylink errors."""
    pass


class NotFound(SurveyLinkError):
    """Raised when a respondent or pairing id does not resolve."""
    pass


class InvalidArgument(SurveyLinkError):
    """Raised for a wrong survey side or a malformed input value."""
    pass


class Conflict(SurveyLinkError):
    """Raised when a pairing for the same (before_id, after_id) already exists."""
    pass


class StorageError(SurveyLinkError):
    """Raised when the relational store cannot be read or written."""
    pass


class ParseWarning(SurveyLinkError):
    """A single manual-override line could not be parsed. Never fatal."""
    pass
