"""
Short-horizon window forecaster.

Predicts which merchants will charge within the next few days directly
from raw history by matching day-of-month windows across distinct months.
Works without any classified or persisted series.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from models.recurring_series import ShortHorizonForecast, ShortHorizonPrediction
from models.transaction import FeedTransaction, SignConvention
from services.recurring_series.config import ShortHorizonConfig
from services.recurring_series.grouping import Normalizer, SeriesGrouper
from utils.temporal_utils import month_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _DayTriple:
    month: str  # YYYY-MM
    day: int
    amount: Decimal
    occurred_on: date


class ShortHorizonForecaster:
    """
    Forecasts merchant charges for tomorrow through ``today + days``.

    For each target date, in ascending order, a merchant qualifies when its
    historical charges within +/- ``day_tolerance`` days of the target's day
    of month span at least ``min_distinct_months`` months. A merchant that
    already has a matching-window charge in the target's month is skipped
    for the rest of the run. Each merchant is predicted at most once.
    """

    def __init__(self, config: Optional[ShortHorizonConfig] = None):
        """
        Initialize the forecaster.

        Args:
            config: Window configuration (creates default if None)
        """
        self.config = config or ShortHorizonConfig()

    def forecast(
        self,
        transactions: Iterable[FeedTransaction],
        today: date,
        normalizer: Optional[Normalizer] = None,
        sign: SignConvention = SignConvention.ANY
    ) -> ShortHorizonForecast:
        """
        Forecast the short horizon.

        Args:
            transactions: Raw feed history (any order)
            today: Evaluation date; history after it is ignored
            normalizer: Maps labels to merchant keys
            sign: Which amounts are considered

        Returns:
            ShortHorizonForecast sorted by date ascending, then amount descending
        """
        history = [t for t in transactions if t.date <= today]
        groups = SeriesGrouper(normalizer=normalizer, sign=sign).group(history)
        triples = {
            key: [_DayTriple(month_label(t.date), t.date.day, t.magnitude, t.date) for t in txns]
            for key, txns in groups.items()
        }

        predictions: List[ShortHorizonPrediction] = []
        resolved: Set[str] = set()

        for offset in range(1, self.config.days + 1):
            target = today + timedelta(days=offset)
            target_month = month_label(target)

            for key in sorted(triples):
                if key in resolved:
                    continue

                matches = self._matching_triples(triples[key], target.day)
                if not matches:
                    continue

                # Compared against the target's month, which is the current month
                # unless the target has rolled into the next one
                if any(m.month == target_month for m in matches):
                    logger.debug(f"Skipping {key}: already charged in {target_month}")
                    resolved.add(key)
                    continue

                months = {m.month for m in matches}
                if len(months) < self.config.min_distinct_months:
                    continue

                predictions.append(ShortHorizonPrediction(
                    series_key=key,
                    date=target,
                    amount=self._latest_amount(matches)
                ))
                resolved.add(key)

        predictions.sort(key=lambda p: (p.date, -p.amount, p.series_key))
        total = sum((p.amount for p in predictions), Decimal("0"))

        logger.info(
            f"Short-horizon forecast: {len(predictions)} predictions totalling {total}",
            extra={"horizon_days": self.config.days, "merchant_count": len(triples)}
        )
        return ShortHorizonForecast(predictions=predictions, total_amount=total)

    def _matching_triples(self, triples: List[_DayTriple], target_day: int) -> List[_DayTriple]:
        # Plain day-number distance; the window does not wrap across month ends
        tolerance = self.config.day_tolerance
        return [t for t in triples if abs(t.day - target_day) <= tolerance]

    def _latest_amount(self, matches: List[_DayTriple]) -> Decimal:
        # YYYY-MM labels sort chronologically; the latest date breaks ties within a month
        latest = max(matches, key=lambda t: (t.month, t.occurred_on))
        return latest.amount
