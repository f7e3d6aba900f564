"""
Calendar projector for recurring series.

Expands classified series across a multi-month horizon into a flat,
date-sorted list of predicted occurrences.
"""

import logging
from datetime import date
from decimal import Decimal
from itertools import groupby
from typing import Iterable, List, Optional

from models.recurring_series import MonthlyProjection, PredictedOccurrence, RecurringSeries
from services.recurring_series.prediction_service import NextOccurrencePredictor
from utils.temporal_utils import add_months, month_label

logger = logging.getLogger(__name__)


class CalendarProjector:
    """
    Projects active, non-irregular series forward to a horizon.

    Every projected date is strictly after today and on or before
    ``today + horizon_months``.
    """

    def __init__(self, predictor: Optional[NextOccurrencePredictor] = None):
        """
        Initialize the projector.

        Args:
            predictor: Shared stepping implementation (creates default if None)
        """
        self.predictor = predictor or NextOccurrencePredictor()

    def project(
        self,
        series_list: Iterable[RecurringSeries],
        today: date,
        horizon_months: int = 3
    ) -> List[PredictedOccurrence]:
        """
        Project series forward into predicted occurrences.

        Args:
            series_list: Series to project; inactive and irregular ones are skipped
            today: Evaluation date
            horizon_months: Horizon in calendar months from today

        Returns:
            Predicted occurrences sorted by date, then series key
        """
        horizon_end = add_months(today, horizon_months)
        predictions: List[PredictedOccurrence] = []

        for series in series_list:
            if not series.active or not series.cadence.is_projectable:
                continue
            if series.last_occurrence_date is None:
                continue
            for projected_date in self.project_dates(series, today, horizon_end):
                predictions.append(PredictedOccurrence(
                    series_key=series.series_key,
                    date=projected_date,
                    amount=series.expected_amount
                ))

        predictions.sort(key=lambda p: (p.date, p.series_key))
        logger.info(
            f"Projected {len(predictions)} occurrences through {horizon_end.isoformat()}",
            extra={"horizon_months": horizon_months, "prediction_count": len(predictions)}
        )
        return predictions

    def project_dates(self, series: RecurringSeries, today: date, horizon_end: date) -> List[date]:
        """
        Dates of one series inside (today, horizon_end].

        A valid manual override replaces the first projected date; later
        dates keep stepping from the literal last occurrence.
        """
        first = self.predictor.compute_next_date(
            series.cadence,
            series.last_occurrence_date,
            today,
            series.manual_override_date
        )
        if first is None or first > horizon_end:
            return []

        dates = [first]
        for candidate in self.predictor.iter_dates(series.cadence, series.last_occurrence_date):
            if candidate > horizon_end:
                break
            if candidate > first:
                dates.append(candidate)
        return dates

    def group_by_month(self, predictions: Iterable[PredictedOccurrence]) -> List[MonthlyProjection]:
        """
        Group predicted occurrences by calendar month.

        Args:
            predictions: Predicted occurrences in any order

        Returns:
            One MonthlyProjection per month, ascending. Each total is the exact
            sum of that month's amounts.
        """
        ordered = sorted(predictions, key=lambda p: (p.date, p.series_key))
        months: List[MonthlyProjection] = []
        for label, items in groupby(ordered, key=lambda p: month_label(p.date)):
            occurrences = list(items)
            total = sum((p.amount for p in occurrences), Decimal("0"))
            months.append(MonthlyProjection(month=label, occurrences=occurrences, total=total))
        return months
