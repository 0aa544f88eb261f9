from .aggregator import AnalysisResult, ChangeMetricsAggregator, MatchedPairMetrics

__all__ = ["AnalysisResult", "ChangeMetricsAggregator", "MatchedPairMetrics"]
