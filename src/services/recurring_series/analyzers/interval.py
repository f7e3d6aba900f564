"""
Interval analyzer for recurring series detection.

Computes day gaps between consecutive occurrences of a series.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntervalStatistics:
    """Day gaps of one series and their summary statistics."""
    gaps: List[int]
    mean: float
    std: float
    min: int
    max: int

    def to_dict(self) -> Dict[str, float]:
        return {
            'mean': self.mean,
            'std': self.std,
            'min': float(self.min),
            'max': float(self.max)
        }


class IntervalAnalyzer:
    """
    Calculates the intervals between consecutive occurrences.

    A series with fewer than two occurrences has no intervals and cannot be
    classified yet.
    """

    def calculate_gaps(self, dates: Sequence[date]) -> List[int]:
        """
        Calculate day gaps between consecutive dates.

        Args:
            dates: Chronologically sorted occurrence dates

        Returns:
            List of ``len(dates) - 1`` gaps in whole days
        """
        return [(dates[i + 1] - dates[i]).days for i in range(len(dates) - 1)]

    def analyze(self, dates: Sequence[date]) -> Optional[IntervalStatistics]:
        """
        Calculate interval statistics for a series.

        Args:
            dates: Occurrence dates; sorted internally

        Returns:
            IntervalStatistics, or None when fewer than two occurrences exist
        """
        if len(dates) < 2:
            return None

        gaps = self.calculate_gaps(sorted(dates))
        stats = IntervalStatistics(
            gaps=gaps,
            mean=float(np.mean(gaps)),
            std=float(np.std(gaps)),
            min=int(min(gaps)),
            max=int(max(gaps))
        )
        logger.debug(f"Interval statistics: {stats.to_dict()}")
        return stats
