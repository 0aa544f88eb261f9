"""Pre/post survey respondent linking and change metrics."""

__version__ = "0.1.0"
