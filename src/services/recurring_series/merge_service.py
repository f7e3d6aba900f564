"""
Series Merge Service.

Combines user-designated duplicate series into one survivor and offers an
advisory duplicate heuristic. Merging is never triggered automatically.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from models.recurring_series import (
    DuplicateSuggestion,
    RecurringSeries,
    SeriesOccurrence,
    SeriesStatus,
)
from services.recurring_series.analyzers.series_analyzer import (
    CENT,
    SeriesAnalyzer,
    mean_amount,
    union_occurrences,
)
from services.recurring_series.config import DEFAULT_CONFIG, EngineConfig
from services.recurring_series.prediction_service import NextOccurrencePredictor

logger = logging.getLogger(__name__)


class InvalidMergeRequest(ValueError):
    """Raised when a merge request cannot be honoured. Nothing is changed."""
    pass


@dataclass
class MergeResult:
    """Survivor of a merge plus the deactivated inputs."""
    survivor: RecurringSeries
    absorbed: List[RecurringSeries] = field(default_factory=list)


class SeriesMergeService:
    """
    Service for merging duplicate recurring series.

    The survivor's cadence and confidence are recomputed from the union of
    the raw occurrences, never averaged from the inputs. Inputs are returned
    as deactivated copies; the caller's objects are not mutated, so a failed
    request leaves nothing half-merged.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        analyzer: Optional[SeriesAnalyzer] = None,
        predictor: Optional[NextOccurrencePredictor] = None
    ):
        self.config = config or DEFAULT_CONFIG
        self.analyzer = analyzer or SeriesAnalyzer(self.config)
        self.predictor = predictor or NextOccurrencePredictor(self.config.semi_monthly)

    def merge(
        self,
        series: Sequence[RecurringSeries],
        today: date,
        survivor_key: Optional[str] = None
    ) -> MergeResult:
        """
        Merge two or more series into one.

        Args:
            series: Active series the caller asserts are duplicates
            today: Evaluation date for the survivor's next prediction
            survivor_key: Key of the surviving series (default: first input)

        Returns:
            MergeResult with the survivor and the absorbed inputs

        Raises:
            InvalidMergeRequest: If fewer than two series are given, a key is
                repeated, owners differ, an input is not active, or the
                survivor key is not among the inputs
        """
        self._validate(series, survivor_key)
        survivor_key = survivor_key or series[0].series_key
        base = next(s for s in series if s.series_key == survivor_key)

        occurrences = union_occurrences((s.series_key, s.occurrences) for s in series)
        cadence, confidence = self.analyzer.classify_union(occurrences, [s.cadence for s in series])

        survivor = RecurringSeries(
            series_key=survivor_key,
            user_id=base.user_id,
            display_name=base.display_name,
            cadence=cadence,
            expected_amount=self._expected_amount(series, occurrences),
            confidence_score=confidence,
            occurrences=occurrences,
            account_ref=self._most_common_account(occurrences) or base.account_ref,
            status=SeriesStatus.ACTIVE,
            source_keys=self._source_keys(series),
            version=base.version,
        )
        self.predictor.refresh(survivor, today)

        absorbed = [
            s.model_copy(update={"status": SeriesStatus.MERGED, "merged_into": survivor_key})
            for s in series
            if s.series_key != survivor_key
        ]

        logger.info(
            f"Merged {len(series)} series into {survivor_key}: "
            f"{len(occurrences)} occurrences, cadence {cadence.value}, confidence {confidence}",
            extra={"user_id": base.user_id, "source_keys": survivor.source_keys}
        )
        return MergeResult(survivor=survivor, absorbed=absorbed)

    def merge_by_keys(
        self,
        available: Mapping[str, RecurringSeries],
        keys: Sequence[str],
        today: date,
        survivor_key: Optional[str] = None
    ) -> MergeResult:
        """
        Merge series referenced by key.

        Raises:
            InvalidMergeRequest: If any key does not exist, or as for ``merge``
        """
        missing = [k for k in keys if k not in available]
        if missing:
            raise InvalidMergeRequest(f"Unknown series key(s): {', '.join(missing)}")
        return self.merge([available[k] for k in keys], today, survivor_key=survivor_key)

    def suggest_duplicates(
        self,
        series: Iterable[RecurringSeries],
        amount_tolerance_pct: Decimal = Decimal("5")
    ) -> List[DuplicateSuggestion]:
        """
        Suggest pairs of series that may be the same event.

        Pairs must be active, owned by the same user, share a projectable
        cadence and have expected amounts within ``amount_tolerance_pct``
        percent of the larger one. Suggestions are advisory only.

        Returns:
            Suggestions ordered by amount difference, then keys
        """
        candidates = [s for s in series if s.active and s.cadence.is_projectable]
        tolerance = Decimal(str(amount_tolerance_pct))
        suggestions: List[DuplicateSuggestion] = []

        for i, first in enumerate(candidates):
            for second in candidates[i + 1:]:
                if first.user_id != second.user_id or first.cadence != second.cadence:
                    continue
                difference = self._amount_difference_pct(first.expected_amount, second.expected_amount)
                if difference <= tolerance:
                    suggestions.append(DuplicateSuggestion(
                        series_keys=sorted([first.series_key, second.series_key]),
                        cadence=first.cadence,
                        amount_difference_pct=difference
                    ))

        suggestions.sort(key=lambda s: (s.amount_difference_pct, s.series_keys))
        return suggestions

    def _validate(self, series: Sequence[RecurringSeries], survivor_key: Optional[str]) -> None:
        if len(series) < 2:
            raise InvalidMergeRequest(f"At least two series are required to merge, got {len(series)}")

        keys = [s.series_key for s in series]
        duplicated = sorted(k for k, count in Counter(keys).items() if count > 1)
        if duplicated:
            raise InvalidMergeRequest(f"Series listed more than once: {', '.join(duplicated)}")

        owners = {s.user_id for s in series}
        if len(owners) > 1:
            raise InvalidMergeRequest("Cannot merge series belonging to different users")

        inactive = [s.series_key for s in series if not s.active]
        if inactive:
            raise InvalidMergeRequest(f"Series not active: {', '.join(inactive)}")

        if survivor_key is not None and survivor_key not in keys:
            raise InvalidMergeRequest(f"Survivor key {survivor_key} is not one of the merged series")

    def _expected_amount(
        self,
        series: Sequence[RecurringSeries],
        occurrences: List[SeriesOccurrence]
    ) -> Decimal:
        mean = mean_amount(occurrences)
        if mean is not None:
            return mean
        return sum((s.expected_amount for s in series), Decimal("0"))

    def _most_common_account(self, occurrences: List[SeriesOccurrence]) -> Optional[str]:
        accounts = Counter(o.account_ref for o in occurrences if o.account_ref)
        if not accounts:
            return None
        return accounts.most_common(1)[0][0]

    def _source_keys(self, series: Sequence[RecurringSeries]) -> List[str]:
        keys: Dict[str, None] = {}
        for s in series:
            keys[s.series_key] = None
            for key in s.source_keys:
                keys[key] = None
        return list(keys)

    def _amount_difference_pct(self, first: Decimal, second: Decimal) -> Decimal:
        larger = max(abs(first), abs(second))
        if larger == 0:
            return Decimal("0")
        difference = abs(abs(first) - abs(second)) / larger * 100
        return difference.quantize(CENT, rounding=ROUND_HALF_UP)
