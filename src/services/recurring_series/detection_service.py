"""
Recurring Series Detection Service.

This module orchestrates recurring series detection over a transaction feed
snapshot and the secondary passes that run on its output.

## Detection Pipeline

```mermaid
graph TD
    A[Transaction feed] --> B[SeriesGrouper]
    B --> C[IntervalAnalyzer]
    C --> D[CadenceClassifier]
    C --> E[ConfidenceScorer]
    D --> F[NextOccurrencePredictor]
    E --> F
    F --> G[RecurringSeries]
    G --> H[CalendarProjector]
    G --> I[SeriesAlertService]
```

The service is pure: it takes the feed, the evaluation date and any
previously persisted series as plain input and returns plain output.
Persistence is the caller's concern (see ``utils.db.recurring_series``).
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from models.recurring_series import (
    MonthlyProjection,
    PredictedOccurrence,
    RecurringSeries,
    SeriesAlert,
    SeriesOccurrence,
    SeriesStatus,
)
from models.transaction import FeedTransaction, SignConvention, parse_transactions
from services.recurring_series.alert_service import SeriesAlertService
from services.recurring_series.analyzers import SeriesAnalyzer, mean_amount, union_occurrences
from services.recurring_series.calendar_projector import CalendarProjector
from services.recurring_series.config import DEFAULT_CONFIG, EngineConfig
from services.recurring_series.grouping import Normalizer, SeriesGrouper
from services.recurring_series.prediction_service import NextOccurrencePredictor
from utils.evaluation_metrics import EvaluationTracker

logger = logging.getLogger(__name__)

FeedRecord = Union[FeedTransaction, Mapping[str, Any]]


@dataclass
class EvaluationResult:
    """Output of one evaluation pass."""
    series: List[RecurringSeries] = field(default_factory=list)
    predictions: List[PredictedOccurrence] = field(default_factory=list)
    monthly: List[MonthlyProjection] = field(default_factory=list)
    alerts: List[SeriesAlert] = field(default_factory=list)


class RecurringSeriesDetectionService:
    """
    Orchestrates recurring series detection using the specialized analyzers.

    A series is created only when at least two occurrences exist and a
    cadence is recognized. Previously known series passed as ``existing``
    keep being tracked even when they turn irregular, and keep their manual
    override, status and version. Their stored occurrences are extended by
    new feed rows, never replaced.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize the detection service.

        Args:
            config: Optional engine configuration. If None, uses DEFAULT_CONFIG.
        """
        self.config = config or DEFAULT_CONFIG
        self.analyzer = SeriesAnalyzer(self.config)
        self.predictor = NextOccurrencePredictor(self.config.semi_monthly)
        self.projector = CalendarProjector(self.predictor)
        self.alert_service = SeriesAlertService(self.config.alerts)

    def detect_series(
        self,
        user_id: str,
        transactions: Iterable[FeedRecord],
        today: date,
        normalizer: Optional[Normalizer] = None,
        sign: SignConvention = SignConvention.ANY,
        existing: Optional[Iterable[RecurringSeries]] = None,
        min_amount: Optional[Decimal] = None
    ) -> List[RecurringSeries]:
        """
        Detect recurring series in a transaction feed.

        Args:
            user_id: Owner of the feed
            transactions: Feed records (dicts or FeedTransaction), any order
            today: Evaluation date
            normalizer: Maps labels to series keys (default: case/whitespace folding)
            sign: Which amounts are considered
            existing: Previously detected series for this user
            min_amount: Optional minimum magnitude, e.g. 100 for income

        Returns:
            Detected series ordered by series key, followed by existing
            series that received no transactions in this feed

        Raises:
            ValueError: If a feed record is malformed
        """
        with EvaluationTracker("detect_series") as tracker:
            return self._detect(tracker, user_id, transactions, today, normalizer, sign, existing, min_amount)

    def evaluate(
        self,
        user_id: str,
        transactions: Iterable[FeedRecord],
        today: date,
        normalizer: Optional[Normalizer] = None,
        sign: SignConvention = SignConvention.ANY,
        existing: Optional[Iterable[RecurringSeries]] = None,
        min_amount: Optional[Decimal] = None
    ) -> EvaluationResult:
        """
        Run detection, calendar projection and alerting in one pass.

        Arguments are as for ``detect_series``.

        Returns:
            EvaluationResult with series, flat predictions, the month view and alerts
        """
        with EvaluationTracker("evaluate_series") as tracker:
            series = self._detect(tracker, user_id, transactions, today, normalizer, sign, existing, min_amount)

            with tracker.stage("projection"):
                predictions = self.projector.project(series, today, self.config.forecast_horizon_months)
                monthly = self.projector.group_by_month(predictions)
            tracker.set_predictions(len(predictions))

            with tracker.stage("alerts"):
                alerts = self.alert_service.detect(series, today)
            tracker.set_alerts(len(alerts))

        return EvaluationResult(series=series, predictions=predictions, monthly=monthly, alerts=alerts)

    def apply_manual_override(
        self,
        series: RecurringSeries,
        override_date: Optional[date],
        today: date
    ) -> RecurringSeries:
        """
        Set or clear a series' manual next date and recompute its prediction.

        An override that is not after today is kept but has no effect until
        cleared; the predictor falls back to stepping.

        Returns:
            Updated copy of the series
        """
        updated = series.model_copy(update={"manual_override_date": override_date})
        self.predictor.refresh(updated, today)
        logger.info(
            f"Manual override for {series.series_key} set to "
            f"{override_date.isoformat() if override_date else 'none'}",
            extra={"user_id": series.user_id, "series_key": series.series_key}
        )
        return updated

    def set_series_status(self, series: RecurringSeries, status: SeriesStatus) -> RecurringSeries:
        """
        Activate or exclude a series.

        Raises:
            ValueError: If asked to mark a series merged; only a merge does that
        """
        if status == SeriesStatus.MERGED:
            raise ValueError("Series are marked merged by the merge service only")
        logger.info(
            f"Series {series.series_key} status {series.status.value} -> {status.value}",
            extra={"user_id": series.user_id, "series_key": series.series_key}
        )
        return series.model_copy(update={"status": status, "merged_into": None})

    def _detect(
        self,
        tracker: EvaluationTracker,
        user_id: str,
        transactions: Iterable[FeedRecord],
        today: date,
        normalizer: Optional[Normalizer],
        sign: SignConvention,
        existing: Optional[Iterable[RecurringSeries]],
        min_amount: Optional[Decimal]
    ) -> List[RecurringSeries]:
        feed = parse_transactions(transactions)
        tracker.set_transaction_count(len(feed))
        known = {s.series_key: s for s in existing or []}
        aliases = self._aliases(known)

        logger.info(
            f"Starting series detection for user {user_id} with {len(feed)} transactions",
            extra={"user_id": user_id, "existing_series": len(known), "sign": sign.value}
        )

        with tracker.stage("grouping"):
            raw_groups = SeriesGrouper(normalizer=normalizer, sign=sign, min_amount=min_amount).group(feed)
            groups = self._fold_aliases(raw_groups, aliases)

        detected: List[RecurringSeries] = []
        with tracker.stage("classification"):
            for key in sorted(groups):
                series = self._build_series(user_id, key, groups[key], today, known.get(key))
                if series is not None:
                    detected.append(series)

        seen = {s.series_key for s in detected}
        for key, prior in known.items():
            if key in seen:
                continue
            carried = prior.model_copy()
            if carried.active:
                self.predictor.refresh(carried, today)
            detected.append(carried)

        tracker.set_series_detected(len(detected))
        logger.info(f"Detection complete: {len(detected)} series for user {user_id}")
        return detected

    def _aliases(self, known: Dict[str, RecurringSeries]) -> Dict[str, str]:
        """Map absorbed series keys to the key of their surviving series."""
        aliases: Dict[str, str] = {}
        for series in known.values():
            if series.status == SeriesStatus.MERGED and series.merged_into:
                aliases[series.series_key] = series.merged_into
            elif series.active:
                for source_key in series.source_keys:
                    if source_key != series.series_key:
                        aliases.setdefault(source_key, series.series_key)
        return aliases

    def _fold_aliases(
        self,
        groups: Dict[str, List[FeedTransaction]],
        aliases: Dict[str, str]
    ) -> Dict[str, List[Tuple[str, FeedTransaction]]]:
        """Fold groups of absorbed keys into their survivor, keeping the original key."""
        folded: Dict[str, List[Tuple[str, FeedTransaction]]] = {}
        for key, txns in groups.items():
            target = key
            visited = {key}
            while target in aliases and aliases[target] not in visited:
                target = aliases[target]
                visited.add(target)
            folded.setdefault(target, []).extend((key, txn) for txn in txns)
        for target in folded:
            folded[target].sort(key=lambda pair: pair[1].date)
        return folded

    def _build_series(
        self,
        user_id: str,
        key: str,
        tagged: List[Tuple[str, FeedTransaction]],
        today: date,
        prior: Optional[RecurringSeries]
    ) -> Optional[RecurringSeries]:
        occurrences = [
            SeriesOccurrence(date=txn.date, amount=txn.magnitude, account_ref=txn.account_ref, source_key=source)
            for source, txn in tagged
        ]
        if prior is not None:
            # History is append-only: stored occurrences are kept and new feed rows extend them
            occurrences = union_occurrences([(key, prior.occurrences), (key, occurrences)])

        if len(occurrences) < self.config.min_occurrences:
            logger.debug(f"Series {key} pending: {len(occurrences)} occurrence(s)")
            return None

        if prior is not None and len(prior.source_keys) > 1:
            # Merge survivors are classified and priced the way the merge did it
            cadence, confidence = self.analyzer.classify_union(occurrences, [prior.cadence])
            expected_amount = mean_amount(occurrences)
        else:
            analysis = self.analyzer.analyze(occurrences, first_classification=prior is None)
            if prior is None and not analysis.cadence.is_projectable:
                logger.debug(
                    f"Series {key} not created: no recognized cadence (mean gap {analysis.intervals.mean:.1f})"
                )
                return None
            cadence, confidence = analysis.cadence, analysis.confidence_score
            expected_amount = occurrences[-1].amount

        drift = expected_amount - prior.expected_amount if prior else Decimal("0")
        accounts = Counter(o.account_ref for o in occurrences if o.account_ref)

        series = RecurringSeries(
            series_key=key,
            user_id=user_id,
            display_name=prior.display_name if prior and prior.display_name else tagged[0][1].label,
            cadence=cadence,
            expected_amount=expected_amount,
            confidence_score=confidence,
            occurrences=occurrences,
            manual_override_date=prior.manual_override_date if prior else None,
            amount_drift=drift,
            account_ref=accounts.most_common(1)[0][0] if accounts else None,
            status=prior.status if prior else SeriesStatus.ACTIVE,
            merged_into=prior.merged_into if prior else None,
            source_keys=list(prior.source_keys) if prior else [],
            version=prior.version if prior else 0,
        )
        self.predictor.refresh(series, today)

        logger.debug(
            f"Series {key}: {series.cadence.value}, confidence {series.confidence_score}, "
            f"next {series.next_predicted_date}",
            extra={"user_id": user_id, "occurrences": len(occurrences)}
        )
        return series
