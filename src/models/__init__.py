"""
Models package for the recurring series engine.
"""

from .transaction import (
    FeedTransaction,
    SignConvention,
    parse_transactions,
)

from .recurring_series import (
    AlertKind,
    Cadence,
    DuplicateSuggestion,
    MonthlyProjection,
    PredictedOccurrence,
    RecurringSeries,
    SeriesAlert,
    SeriesOccurrence,
    SeriesStatus,
    ShortHorizonForecast,
    ShortHorizonPrediction,
)

__all__ = [
    'FeedTransaction',
    'SignConvention',
    'parse_transactions',
    'AlertKind',
    'Cadence',
    'DuplicateSuggestion',
    'MonthlyProjection',
    'PredictedOccurrence',
    'RecurringSeries',
    'SeriesAlert',
    'SeriesOccurrence',
    'SeriesStatus',
    'ShortHorizonForecast',
    'ShortHorizonPrediction',
]
