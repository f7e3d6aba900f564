"""
Configuration classes for recurring series detection.

Centralizes all configuration parameters, thresholds, and weights used
by the detection, forecasting and alerting pipeline.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from models.recurring_series import Cadence


@dataclass
class CadenceBands:
    """
    Day range bands for cadence classification.

    Each band is a tuple of (min_days, max_days) that defines the acceptable
    mean interval for that cadence.
    """

    weekly: Tuple[float, float] = (6, 8)
    """Weekly recurrence: 6 to 8 days between occurrences."""

    bi_weekly: Tuple[float, float] = (13, 15)
    """Bi-weekly recurrence: 13 to 15 days between occurrences."""

    monthly: Tuple[float, float] = (28, 32)
    """Monthly recurrence: 28 to 32 days between occurrences."""

    semi_monthly: Tuple[float, float] = (56, 64)
    """
    Semi-monthly recurrence observed as a combined two-charge cycle.

    Most semi-monthly series are caught by the day-of-month rule in
    ``SemiMonthlyPattern`` before banding is consulted.
    """

    band_margin_days: float = 1.0
    """Slack added on both sides of every band when matching a mean gap."""

    def __post_init__(self):
        """Validate that every band is a proper (min, max) range."""
        for cadence, (low, high) in self.to_dict().items():
            if low > high:
                raise ValueError(f"Invalid band for {cadence.value}: ({low}, {high})")
        if self.band_margin_days < 0:
            raise ValueError(f"band_margin_days must be >= 0, got {self.band_margin_days}")

    def to_dict(self) -> Dict[Cadence, Tuple[float, float]]:
        """
        Convert bands to a dictionary mapping cadence enum to ranges.

        Returns:
            Dictionary mapping Cadence to (min_days, max_days) tuple
        """
        return {
            Cadence.WEEKLY: self.weekly,
            Cadence.BI_WEEKLY: self.bi_weekly,
            Cadence.MONTHLY: self.monthly,
            Cadence.SEMI_MONTHLY: self.semi_monthly,
        }


@dataclass
class SemiMonthlyPattern:
    """Day-of-month policy for recognizing 15th / end-of-month series."""

    split_day: int = 16
    """Days up to and including this are the first half of the month."""

    mid_month_start: int = 12
    """First day counted as a mid-month anchor (through ``split_day``)."""

    min_per_half: int = 2
    """Occurrences required in each half (relaxed to n // 2 for short series)."""

    end_of_month_window: int = 3
    """The last N days of a month count as an end-of-month anchor."""

    min_occurrences: int = 3

    def __post_init__(self):
        if not 1 <= self.mid_month_start <= self.split_day <= 28:
            raise ValueError(
                f"Invalid semi-monthly split: mid_month_start={self.mid_month_start}, "
                f"split_day={self.split_day}"
            )


@dataclass
class ConfidenceWeights:
    """
    Weights for confidence score calculation.

    All weights must sum to 1.0 for proper normalization.
    """

    interval_consistency: float = 0.60
    """Weight for interval consistency (how consistent are time gaps)."""

    amount_consistency: float = 0.40
    """Weight for amount consistency (how consistent are amounts)."""

    first_classification_cap: int = 50
    """Score ceiling for a series first classified from two occurrences."""

    limited_evidence_occurrences: int = 2

    def __post_init__(self):
        """Validate that weights sum to 1.0."""
        total = self.interval_consistency + self.amount_consistency
        if abs(total - 1.0) > 0.001:
            raise ValueError(
                f"Confidence weights must sum to 1.0, got {total}. "
                f"Weights: interval={self.interval_consistency}, "
                f"amount={self.amount_consistency}"
            )


@dataclass
class ShortHorizonConfig:
    """Configuration for the state-free short-horizon forecaster."""

    days: int = 7
    """Lookahead in calendar days, starting tomorrow."""

    day_tolerance: int = 2
    """Historical charges within +/- this many days of the target day match."""

    min_distinct_months: int = 2
    """Matched charges must span at least this many calendar months."""


@dataclass
class AlertConfig:
    """Configuration for dormancy and amount-drift alerts."""

    dormancy_threshold_days: int = 60
    """A series idle for strictly more than this many days is dormant."""

    alert_cap: int = 5
    """Maximum alerts emitted per evaluation."""


# Option keys accepted from callers, mapped to (section, attribute)
_OPTION_KEYS: Dict[str, Tuple[Optional[str], str]] = {
    "dormancy_threshold_days": ("alerts", "dormancy_threshold_days"),
    "alert_cap": ("alerts", "alert_cap"),
    "forecast_horizon_months": (None, "forecast_horizon_months"),
    "short_horizon_days": ("short_horizon", "days"),
    "short_horizon_day_tolerance": ("short_horizon", "day_tolerance"),
    "short_horizon_min_distinct_months": ("short_horizon", "min_distinct_months"),
}


@dataclass
class EngineConfig:
    """
    Master configuration for the recurring series engine.

    Aggregates all configuration classes into a single configuration object
    that is passed explicitly to every service.
    """

    bands: CadenceBands = field(default_factory=CadenceBands)
    semi_monthly: SemiMonthlyPattern = field(default_factory=SemiMonthlyPattern)
    confidence_weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    short_horizon: ShortHorizonConfig = field(default_factory=ShortHorizonConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    forecast_horizon_months: int = 3
    min_occurrences: int = 2

    def __post_init__(self):
        if self.min_occurrences < 2:
            raise ValueError(f"min_occurrences must be >= 2, got {self.min_occurrences}")
        if self.forecast_horizon_months < 0:
            raise ValueError(f"forecast_horizon_months must be >= 0, got {self.forecast_horizon_months}")
        if self.alerts.alert_cap < 0:
            raise ValueError(f"alert_cap must be >= 0, got {self.alerts.alert_cap}")
        if self.alerts.dormancy_threshold_days < 0:
            raise ValueError(
                f"dormancy_threshold_days must be >= 0, got {self.alerts.dormancy_threshold_days}"
            )
        if self.short_horizon.days < 0 or self.short_horizon.day_tolerance < 0:
            raise ValueError("short horizon days and day_tolerance must be >= 0")
        if self.short_horizon.min_distinct_months < 1:
            raise ValueError(
                f"short_horizon_min_distinct_months must be >= 1, "
                f"got {self.short_horizon.min_distinct_months}"
            )

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> 'EngineConfig':
        """
        Build a configuration from the caller-facing option keys.

        Args:
            options: Mapping with any of dormancy_threshold_days, alert_cap,
                forecast_horizon_months, short_horizon_days,
                short_horizon_day_tolerance, short_horizon_min_distinct_months

        Returns:
            EngineConfig with the given options applied over the defaults

        Raises:
            ValueError: If an option key is unknown or a value is not an integer
        """
        options = dict(options or {})
        unknown = sorted(set(options) - set(_OPTION_KEYS))
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")

        alerts = AlertConfig()
        short_horizon = ShortHorizonConfig()
        top_level: Dict[str, Any] = {}
        sections = {"alerts": alerts, "short_horizon": short_horizon}

        for key, raw_value in options.items():
            if isinstance(raw_value, bool):
                raise ValueError(f"Option {key} must be an integer, got {raw_value!r}")
            try:
                value = int(raw_value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Option {key} must be an integer, got {raw_value!r}") from e
            section, attribute = _OPTION_KEYS[key]
            if section is None:
                top_level[attribute] = value
            else:
                setattr(sections[section], attribute, value)

        return cls(alerts=alerts, short_horizon=short_horizon, **top_level)

    @classmethod
    def from_environment(cls) -> 'EngineConfig':
        """
        Create configuration from environment variables with fallback to defaults.

        Environment variables:
        - RECURRING_DORMANCY_THRESHOLD_DAYS
        - RECURRING_ALERT_CAP
        - RECURRING_FORECAST_HORIZON_MONTHS
        - RECURRING_SHORT_HORIZON_DAYS
        - RECURRING_SHORT_HORIZON_DAY_TOLERANCE
        - RECURRING_SHORT_HORIZON_MIN_DISTINCT_MONTHS
        - RECURRING_SEMI_MONTHLY_SPLIT_DAY
        """
        return cls(
            semi_monthly=SemiMonthlyPattern(
                split_day=int(os.getenv('RECURRING_SEMI_MONTHLY_SPLIT_DAY', 16)),
            ),
            short_horizon=ShortHorizonConfig(
                days=int(os.getenv('RECURRING_SHORT_HORIZON_DAYS', 7)),
                day_tolerance=int(os.getenv('RECURRING_SHORT_HORIZON_DAY_TOLERANCE', 2)),
                min_distinct_months=int(os.getenv('RECURRING_SHORT_HORIZON_MIN_DISTINCT_MONTHS', 2)),
            ),
            alerts=AlertConfig(
                dormancy_threshold_days=int(os.getenv('RECURRING_DORMANCY_THRESHOLD_DAYS', 60)),
                alert_cap=int(os.getenv('RECURRING_ALERT_CAP', 5)),
            ),
            forecast_horizon_months=int(os.getenv('RECURRING_FORECAST_HORIZON_MONTHS', 3)),
        )


# Default configuration instance
DEFAULT_CONFIG = EngineConfig()
