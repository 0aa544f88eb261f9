from .importer import ImportResult, SurveyImporter

__all__ = ["ImportResult", "SurveyImporter"]
