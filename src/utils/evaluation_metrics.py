"""
Performance monitoring utilities for recurring series evaluations.

This module provides a context manager for timing one evaluation pass of the
recurring series engine, including:
- Per-stage timings (grouping, classification, projection, ...)
- Transaction, series and prediction counts
- Total execution time, logged at a level that reflects how slow it was
"""

import time
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SLOW_EVALUATION_MS = 2000
VERY_SLOW_EVALUATION_MS = 10000


@dataclass
class EvaluationMetrics:
    """Container for evaluation performance metrics."""
    operation_name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    elapsed_ms: Optional[float] = None
    transaction_count: int = 0
    series_detected: int = 0
    predictions: int = 0
    alerts: int = 0
    stage_ms: Dict[str, float] = field(default_factory=dict)

    def finish(self):
        """Mark the operation as finished and calculate elapsed time."""
        self.end_time = time.time()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            'operation_name': self.operation_name,
            'elapsed_ms': self.elapsed_ms,
            'transaction_count': self.transaction_count,
            'series_detected': self.series_detected,
            'predictions': self.predictions,
            'alerts': self.alerts,
            'stage_ms': dict(self.stage_ms),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def log_metrics(self):
        """Log the performance metrics."""
        metrics = self.to_dict()
        elapsed = self.elapsed_ms or 0.0

        if elapsed > VERY_SLOW_EVALUATION_MS:
            logger.error(
                f"SLOW EVALUATION: {self.operation_name} took {elapsed:.2f}ms",
                extra={'evaluation_metrics': metrics}
            )
        elif elapsed > SLOW_EVALUATION_MS:
            logger.warning(
                f"Slow evaluation: {self.operation_name} took {elapsed:.2f}ms",
                extra={'evaluation_metrics': metrics}
            )
        else:
            logger.info(
                f"Evaluation completed: {self.operation_name} in {elapsed:.2f}ms",
                extra={'evaluation_metrics': metrics}
            )

        if self.stage_ms:
            breakdown = ", ".join(f"{stage}: {ms:.2f}ms" for stage, ms in self.stage_ms.items())
            logger.debug(
                f"Evaluation breakdown for {self.operation_name}: {breakdown}",
                extra={'evaluation_metrics': metrics}
            )


class StageTimer:
    """Times one named stage and records it on the metrics."""

    def __init__(self, metrics: EvaluationMetrics, stage: str):
        self.metrics = metrics
        self.stage = stage
        self.start_time: float = 0.0

    def __enter__(self):
        self.start_time = time.time()
        logger.debug(f"Starting stage: {self.stage}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = (time.time() - self.start_time) * 1000
        # Repeated stages accumulate
        self.metrics.stage_ms[self.stage] = self.metrics.stage_ms.get(self.stage, 0.0) + elapsed_ms
        logger.debug(f"Completed stage {self.stage} in {elapsed_ms:.2f}ms")


class EvaluationTracker:
    """
    Context manager for tracking one evaluation pass.

    Usage:
        with EvaluationTracker("detect_series") as tracker:
            tracker.set_transaction_count(len(transactions))

            with tracker.stage('grouping'):
                groups = grouper.group(transactions)

            with tracker.stage('classification'):
                series = classify(groups)
            tracker.set_series_detected(len(series))
    """

    def __init__(self, operation_name: str):
        self.metrics = EvaluationMetrics(operation_name=operation_name)

    def __enter__(self):
        logger.debug(f"Starting evaluation: {self.metrics.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.metrics.finish()
        if exc_type is not None:
            logger.error(
                f"Evaluation {self.metrics.operation_name} failed after "
                f"{self.metrics.elapsed_ms:.2f}ms: {exc_val}",
                extra={'evaluation_metrics': self.metrics.to_dict()}
            )
            return False
        self.metrics.log_metrics()
        return False

    def stage(self, stage_name: str) -> StageTimer:
        """Create a context manager for tracking a stage."""
        return StageTimer(self.metrics, stage_name)

    def set_transaction_count(self, count: int):
        """Set the number of transactions being processed."""
        self.metrics.transaction_count = count

    def set_series_detected(self, count: int):
        """Set the number of series detected."""
        self.metrics.series_detected = count

    def set_predictions(self, count: int):
        """Set the number of predicted occurrences."""
        self.metrics.predictions = count

    def set_alerts(self, count: int):
        """Set the number of alerts raised."""
        self.metrics.alerts = count
