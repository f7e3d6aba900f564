"""
Pattern analyzers for recurring series detection.

This package provides the analyzers that turn an occurrence set into a
cadence and a confidence score.
"""

from services.recurring_series.analyzers.interval import IntervalAnalyzer, IntervalStatistics
from services.recurring_series.analyzers.frequency import CadenceClassifier
from services.recurring_series.analyzers.confidence import ConfidenceScorer
from services.recurring_series.analyzers.series_analyzer import (
    SeriesAnalysis,
    SeriesAnalyzer,
    majority_cadence,
    mean_amount,
    union_occurrences,
)

__all__ = [
    'IntervalAnalyzer',
    'IntervalStatistics',
    'CadenceClassifier',
    'ConfidenceScorer',
    'SeriesAnalysis',
    'SeriesAnalyzer',
    'majority_cadence',
    'mean_amount',
    'union_occurrences',
]
