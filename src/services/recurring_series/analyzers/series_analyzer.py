"""
Series analyzer combining interval, cadence and confidence analysis.

Detection and merging both classify a set of occurrences the same way;
this analyzer is the shared entry point. The module also holds the
occurrence-set helpers both passes rely on, so a survivor re-detected from
unchanged data keeps the cadence and amount its merge produced.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Tuple

from models.recurring_series import Cadence, SeriesOccurrence
from services.recurring_series.analyzers.confidence import ConfidenceScorer
from services.recurring_series.analyzers.frequency import CadenceClassifier
from services.recurring_series.analyzers.interval import IntervalAnalyzer, IntervalStatistics
from services.recurring_series.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class SeriesAnalysis:
    """Classification of one occurrence set."""
    cadence: Cadence
    confidence_score: int
    intervals: IntervalStatistics


def union_occurrences(
    tagged_sets: Iterable[Tuple[str, Iterable[SeriesOccurrence]]]
) -> List[SeriesOccurrence]:
    """
    Union occurrence sets, sorted by date.

    Occurrences without a source key take the key their set is tagged with.
    Duplicates are dropped on (date, amount, source_key), first one wins.
    """
    seen = set()
    union: List[SeriesOccurrence] = []
    for key, occurrences in tagged_sets:
        for occurrence in occurrences:
            tagged = occurrence if occurrence.source_key else occurrence.model_copy(
                update={"source_key": key}
            )
            identity: Tuple[date, Decimal, Optional[str]] = (tagged.date, tagged.amount, tagged.source_key)
            if identity in seen:
                continue
            seen.add(identity)
            union.append(tagged)
    union.sort(key=lambda o: o.date)
    return union


def mean_amount(occurrences: Sequence[SeriesOccurrence]) -> Optional[Decimal]:
    """Mean occurrence amount rounded half-up to the cent, None when empty."""
    if not occurrences:
        return None
    total = sum((o.amount for o in occurrences), Decimal("0"))
    return (total / len(occurrences)).quantize(CENT, rounding=ROUND_HALF_UP)


def majority_cadence(cadences: Sequence[Cadence]) -> Cadence:
    """Most frequent cadence; ties go to the shorter period."""
    counts = Counter(cadences)
    return min(counts, key=lambda c: (-counts[c], c.period_days))


class SeriesAnalyzer:
    """Runs interval analysis, cadence classification and confidence scoring."""

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or DEFAULT_CONFIG
        self.interval_analyzer = IntervalAnalyzer()
        self.classifier = CadenceClassifier(config.bands, config.semi_monthly)
        self.scorer = ConfidenceScorer(config.confidence_weights)

    def analyze(
        self,
        occurrences: Sequence[SeriesOccurrence],
        first_classification: bool = True
    ) -> Optional[SeriesAnalysis]:
        """
        Classify a chronologically sorted occurrence set.

        Args:
            occurrences: Occurrences sorted ascending by date
            first_classification: Whether the limited-evidence cap applies

        Returns:
            SeriesAnalysis, or None when fewer than two occurrences exist
        """
        dates = [o.date for o in occurrences]
        intervals = self.interval_analyzer.analyze(dates)
        if intervals is None:
            return None

        cadence = self.classifier.classify(dates, intervals.mean)
        confidence = self.scorer.score(
            intervals.gaps,
            [o.amount for o in occurrences],
            first_classification=first_classification
        )
        return SeriesAnalysis(cadence=cadence, confidence_score=confidence, intervals=intervals)

    def classify_union(
        self,
        occurrences: Sequence[SeriesOccurrence],
        source_cadences: Sequence[Cadence]
    ) -> Tuple[Cadence, int]:
        """
        Classify the union of several series' occurrences.

        When the union reads as irregular but every source series had a
        projectable cadence, the majority of the source cadences is used.
        Confidence always comes from the union itself.

        Args:
            occurrences: Unioned occurrences sorted ascending by date
            source_cadences: Cadences of the series the union was built from

        Returns:
            Tuple of (cadence, confidence_score)
        """
        analysis = self.analyze(occurrences, first_classification=False)
        cadence = analysis.cadence if analysis else Cadence.IRREGULAR
        confidence = analysis.confidence_score if analysis else 0

        if cadence == Cadence.IRREGULAR and source_cadences and all(c.is_projectable for c in source_cadences):
            cadence = majority_cadence(source_cadences)
            logger.debug(f"Union classified irregular, falling back to majority vote: {cadence.value}")

        return cadence, confidence
