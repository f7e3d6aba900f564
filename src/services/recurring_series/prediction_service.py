"""
Next-Occurrence Prediction Service.

This module predicts the next occurrence of a recurring series from its
cadence and most recent occurrence. It is the single place where dates are
stepped forward by cadence; the calendar projector and the merge engine
both step through it.
"""

import logging
from datetime import date, timedelta
from typing import Iterator, Optional

from models.recurring_series import Cadence, PredictedOccurrence, RecurringSeries
from services.recurring_series.config import SemiMonthlyPattern
from utils.temporal_utils import add_months, first_of_next_month, last_day_of_month

logger = logging.getLogger(__name__)

# Fixed-length cadences, in days
CADENCE_STEP_DAYS = {
    Cadence.WEEKLY: 7,
    Cadence.BI_WEEKLY: 14,
}

SEMI_MONTHLY_MID_DAY = 15


class NextOccurrencePredictor:
    """
    Service for predicting the next occurrence of a recurring series.

    Handles the stepping rules for every projectable cadence:
    - Weekly / bi-weekly: exact +7 / +14 days, preserving the weekday
    - Monthly: +1 calendar month, anchored on the original day of month
      and clamped to the month length
    - Semi-monthly: 15th and last day of month, alternating
    """

    def __init__(self, semi_monthly: Optional[SemiMonthlyPattern] = None):
        """
        Initialize the prediction service.

        Args:
            semi_monthly: Day-of-month policy (creates default if None)
        """
        self.semi_monthly = semi_monthly or SemiMonthlyPattern()

    def iter_dates(self, cadence: Cadence, last_occurrence: date) -> Iterator[date]:
        """
        Yield successive occurrence dates after ``last_occurrence``.

        The generator is unbounded; callers stop it themselves.

        Args:
            cadence: Series cadence (must not be IRREGULAR)
            last_occurrence: Most recent realized occurrence

        Yields:
            Dates strictly after ``last_occurrence``, ascending

        Raises:
            ValueError: If the cadence is IRREGULAR
        """
        if cadence in CADENCE_STEP_DAYS:
            step = timedelta(days=CADENCE_STEP_DAYS[cadence])
            current = last_occurrence
            while True:
                current = current + step
                yield current

        elif cadence == Cadence.MONTHLY:
            # Stepping from the literal last date keeps a 31st from sliding
            # to the 28th after passing through February
            anchor_day = last_occurrence.day
            months = 0
            while True:
                months += 1
                yield add_months(last_occurrence, months, anchor_day=anchor_day)

        elif cadence == Cadence.SEMI_MONTHLY:
            current = last_occurrence
            while True:
                current = self.next_semi_monthly_date(current)
                yield current

        else:
            raise ValueError(f"Cadence {cadence.value} cannot be projected forward")

    def next_semi_monthly_date(self, current: date) -> date:
        """
        Step once through the 15th / end-of-month alternation.

        Args:
            current: Date of the current occurrence

        Returns:
            Last day of the same month when ``current`` is in the first half,
            otherwise the 15th of the next month
        """
        if current.day <= self.semi_monthly.split_day:
            month_end = last_day_of_month(current)
            if month_end > current:
                return month_end
        return first_of_next_month(current).replace(day=SEMI_MONTHLY_MID_DAY)

    def compute_next_date(
        self,
        cadence: Cadence,
        last_occurrence: date,
        today: date,
        manual_override_date: Optional[date] = None
    ) -> Optional[date]:
        """
        Compute the next expected date of a series.

        A manual override wins when it is strictly after both today and the
        last occurrence. A stale override is ignored and stepping resumes
        from the literal last occurrence.

        Args:
            cadence: Series cadence
            last_occurrence: Most recent realized occurrence
            today: Evaluation date
            manual_override_date: Optional caller-set next date

        Returns:
            The next date strictly after today and after the last occurrence,
            or None for IRREGULAR series
        """
        if not cadence.is_projectable:
            return None

        if manual_override_date is not None:
            if manual_override_date > today and manual_override_date > last_occurrence:
                return manual_override_date
            logger.debug(f"Ignoring stale manual override {manual_override_date.isoformat()}")

        for candidate in self.iter_dates(cadence, last_occurrence):
            if candidate > today:
                return candidate
        return None  # pragma: no cover - iter_dates is unbounded

    def predict(self, series: RecurringSeries, today: date) -> Optional[PredictedOccurrence]:
        """
        Predict the next occurrence of a series.

        Args:
            series: Classified series
            today: Evaluation date

        Returns:
            PredictedOccurrence with the series' expected amount, or None when
            the series has no history or is IRREGULAR
        """
        if series.last_occurrence_date is None:
            return None

        next_date = self.compute_next_date(
            series.cadence,
            series.last_occurrence_date,
            today,
            series.manual_override_date
        )
        if next_date is None:
            return None

        return PredictedOccurrence(
            series_key=series.series_key,
            date=next_date,
            amount=series.expected_amount
        )

    def refresh(self, series: RecurringSeries, today: date) -> RecurringSeries:
        """Recompute ``last_occurrence_date`` and ``next_predicted_date`` in place."""
        if series.occurrences:
            series.last_occurrence_date = series.occurrences[-1].date
        prediction = self.predict(series, today)
        series.next_predicted_date = prediction.date if prediction else None
        return series
