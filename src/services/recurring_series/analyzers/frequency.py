"""
Cadence classifier for recurring series detection.

Maps the mean interval of a series, or its day-of-month pattern, to one of
the fixed cadence labels.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from models.recurring_series import Cadence
from services.recurring_series.config import CadenceBands, SemiMonthlyPattern
from utils.temporal_utils import is_within_month_end

logger = logging.getLogger(__name__)


class CadenceClassifier:
    """
    Classifies a series into weekly, bi-weekly, semi-monthly, monthly or
    irregular.

    The semi-monthly day-of-month rule is checked first because the raw mean
    gap of a 15th / end-of-month series alternates between 15 and 16 days
    and would otherwise band as bi-weekly.
    """

    def __init__(
        self,
        bands: Optional[CadenceBands] = None,
        semi_monthly: Optional[SemiMonthlyPattern] = None
    ):
        """
        Initialize the cadence classifier.

        Args:
            bands: Mean-gap bands (creates default if None)
            semi_monthly: Day-of-month policy (creates default if None)
        """
        self.bands = bands or CadenceBands()
        self.semi_monthly = semi_monthly or SemiMonthlyPattern()

    def classify(self, dates: Sequence[date], mean_gap: Optional[float]) -> Cadence:
        """
        Classify a series.

        Args:
            dates: Chronologically sorted occurrence dates
            mean_gap: Mean interval in days, None if fewer than two occurrences

        Returns:
            The detected cadence, IRREGULAR when nothing matches
        """
        if mean_gap is None or len(dates) < 2:
            return Cadence.IRREGULAR

        if self.is_semi_monthly_pattern(dates):
            return Cadence.SEMI_MONTHLY

        return self.match_band(mean_gap)

    def match_band(self, mean_gap: float) -> Cadence:
        """
        Match a mean gap to the band with the closest center.

        A band is a candidate when the mean lies inside it widened by
        ``band_margin_days``. Exact center ties go to the shorter period.

        Args:
            mean_gap: Mean interval in days

        Returns:
            Matching cadence or IRREGULAR
        """
        margin = self.bands.band_margin_days
        candidates: List[Tuple[float, int, Cadence]] = []
        for cadence, (min_days, max_days) in self.bands.to_dict().items():
            if min_days - margin <= mean_gap <= max_days + margin:
                center = (min_days + max_days) / 2
                candidates.append((abs(mean_gap - center), cadence.period_days, cadence))

        if not candidates:
            logger.debug(f"Mean gap {mean_gap:.2f} matches no cadence band")
            return Cadence.IRREGULAR

        candidates.sort(key=lambda c: (c[0], c[1]))
        return candidates[0][2]

    def is_semi_monthly_pattern(self, dates: Sequence[date]) -> bool:
        """
        Check for a 15th / end-of-month day-of-month pattern.

        Every occurrence must sit on a mid-month or end-of-month anchor,
        consecutive occurrences must alternate halves of the month, and
        both halves must be represented.

        Args:
            dates: Chronologically sorted occurrence dates

        Returns:
            True if the dates follow the semi-monthly pattern
        """
        policy = self.semi_monthly
        if len(dates) < policy.min_occurrences:
            return False

        halves: List[int] = []
        for d in dates:
            if not self._is_anchor(d):
                return False
            halves.append(0 if d.day <= policy.split_day else 1)

        if any(halves[i] == halves[i + 1] for i in range(len(halves) - 1)):
            return False

        counts: Dict[int, int] = {0: halves.count(0), 1: halves.count(1)}
        required = min(policy.min_per_half, len(dates) // 2)
        return min(counts.values()) >= required

    def _is_anchor(self, d: date) -> bool:
        policy = self.semi_monthly
        if policy.mid_month_start <= d.day <= policy.split_day:
            return True
        return is_within_month_end(d, policy.end_of_month_window)
