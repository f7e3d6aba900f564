"""
Recurring Series Detection and Forecasting Services.

This package detects recurring financial events (paychecks, subscriptions,
bills) in a transaction feed, predicts their next occurrences and raises
alerts when a pattern breaks.

Public API:
    - RecurringSeriesDetectionService: Grouping, classification and prediction
    - NextOccurrencePredictor: The single cadence stepping implementation
    - CalendarProjector: Multi-month projection and month view
    - ShortHorizonForecaster: State-free day-of-month window forecast
    - SeriesMergeService: Manual merging and advisory duplicate suggestions
    - SeriesAlertService: Dormancy and amount drift alerts
    - EngineConfig: Configuration for all of the above
    - DEFAULT_CONFIG: Default configuration instance
"""

from services.recurring_series.config import (
    EngineConfig,
    DEFAULT_CONFIG,
    CadenceBands,
    SemiMonthlyPattern,
    ConfidenceWeights,
    ShortHorizonConfig,
    AlertConfig,
)
from services.recurring_series.grouping import (
    SeriesGrouper,
    default_normalizer,
    income_source_normalizer,
    group_transactions,
)
from services.recurring_series.analyzers import (
    IntervalAnalyzer,
    CadenceClassifier,
    ConfidenceScorer,
    SeriesAnalyzer,
)
from services.recurring_series.prediction_service import NextOccurrencePredictor
from services.recurring_series.calendar_projector import CalendarProjector
from services.recurring_series.short_horizon import ShortHorizonForecaster
from services.recurring_series.merge_service import (
    SeriesMergeService,
    MergeResult,
    InvalidMergeRequest,
)
from services.recurring_series.alert_service import SeriesAlertService
from services.recurring_series.detection_service import (
    RecurringSeriesDetectionService,
    EvaluationResult,
)

__all__ = [
    'EngineConfig',
    'DEFAULT_CONFIG',
    'CadenceBands',
    'SemiMonthlyPattern',
    'ConfidenceWeights',
    'ShortHorizonConfig',
    'AlertConfig',
    'SeriesGrouper',
    'default_normalizer',
    'income_source_normalizer',
    'group_transactions',
    'IntervalAnalyzer',
    'CadenceClassifier',
    'ConfidenceScorer',
    'SeriesAnalyzer',
    'NextOccurrencePredictor',
    'CalendarProjector',
    'ShortHorizonForecaster',
    'SeriesMergeService',
    'MergeResult',
    'InvalidMergeRequest',
    'SeriesAlertService',
    'RecurringSeriesDetectionService',
    'EvaluationResult',
]
