"""
Confidence scorer for recurring series detection.

Rates how regular a series is from interval and amount consistency.
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from services.recurring_series.config import ConfidenceWeights

logger = logging.getLogger(__name__)


class ConfidenceScorer:
    """
    Calculates a 0-100 confidence score for a recurring series.

    Considers:
    - Interval consistency (1 - coefficient of variation of the gaps)
    - Amount consistency (1 - coefficient of variation of the magnitudes)

    Both factors are clamped to [0, 1] before weighting.
    """

    def __init__(self, weights: Optional[ConfidenceWeights] = None):
        """
        Initialize the confidence scorer.

        Args:
            weights: Optional custom weights. If None, uses 60% interval /
                    40% amount with a cap of 50 on limited evidence.
        """
        self.weights = weights or ConfidenceWeights()

    def score(
        self,
        gaps: Sequence[int],
        amounts: Sequence[Decimal],
        first_classification: bool = True
    ) -> int:
        """
        Calculate the confidence score.

        Args:
            gaps: Day gaps between consecutive occurrences
            amounts: Occurrence amounts (sign is ignored)
            first_classification: True when the series is being classified
                for the first time. Merged series pass False.

        Returns:
            Integer score between 0 and 100
        """
        interval_consistency = self.interval_consistency(gaps)
        amount_consistency = self.amount_consistency(amounts)

        blended = (
            self.weights.interval_consistency * interval_consistency +
            self.weights.amount_consistency * amount_consistency
        )
        score = int(round(100 * blended))

        occurrences = len(gaps) + 1
        if first_classification and occurrences <= self.weights.limited_evidence_occurrences:
            score = min(score, self.weights.first_classification_cap)

        return max(0, min(100, score))

    def interval_consistency(self, gaps: Sequence[int]) -> float:
        """
        Consistency of the intervals between occurrences.

        Args:
            gaps: Day gaps

        Returns:
            Consistency (0.0-1.0), 0.0 when there are no gaps
        """
        if len(gaps) == 0:
            return 0.0
        return self._consistency([float(g) for g in gaps])

    def amount_consistency(self, amounts: Sequence[Decimal]) -> float:
        """
        Consistency of the amounts across occurrences.

        Args:
            amounts: Occurrence amounts

        Returns:
            Consistency (0.0-1.0), 0.0 when there are no amounts
        """
        if len(amounts) == 0:
            return 0.0
        return self._consistency([abs(float(a)) for a in amounts])

    def _consistency(self, values: Sequence[float]) -> float:
        mean_value = float(np.mean(values))
        std_value = float(np.std(values))

        if mean_value == 0:
            # Constant zero series is perfectly consistent, anything else is noise
            return 1.0 if std_value == 0 else 0.0

        return float(min(1.0, max(0.0, 1.0 - std_value / mean_value)))
