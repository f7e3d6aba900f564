"""
Drift and dormancy alert detection for recurring series.

Alerts are ephemeral: they are recomputed on every evaluation pass and
never stored.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from models.recurring_series import AlertKind, RecurringSeries, SeriesAlert
from services.recurring_series.config import AlertConfig

logger = logging.getLogger(__name__)

MONEY_FORMAT = "{:,.2f}"


class SeriesAlertService:
    """
    Detects pattern breaks on active series.

    For each series, in input order, a dormant check runs before the amount
    change check. Output is truncated to ``alert_cap`` in that detection
    order; alerts are not ranked by severity.
    """

    def __init__(self, config: Optional[AlertConfig] = None):
        self.config = config or AlertConfig()

    def detect(self, series_list: Iterable[RecurringSeries], today: date) -> List[SeriesAlert]:
        """
        Detect dormant and amount-change alerts.

        Args:
            series_list: Series to check; only active ones are considered
            today: Evaluation date

        Returns:
            At most ``alert_cap`` alerts in detection order
        """
        alerts: List[SeriesAlert] = []
        for series in series_list:
            if not series.active:
                continue

            dormant = self._dormant_alert(series, today)
            if dormant:
                alerts.append(dormant)

            amount_change = self._amount_change_alert(series)
            if amount_change:
                alerts.append(amount_change)

        if len(alerts) > self.config.alert_cap:
            logger.info(
                f"Truncating {len(alerts)} alerts to cap of {self.config.alert_cap}",
                extra={"alert_count": len(alerts), "alert_cap": self.config.alert_cap}
            )
        return alerts[:self.config.alert_cap]

    def is_dormant(self, series: RecurringSeries, today: date) -> bool:
        """True when the last occurrence is strictly older than the threshold."""
        if series.last_occurrence_date is None:
            return False
        return (today - series.last_occurrence_date).days > self.config.dormancy_threshold_days

    def _dormant_alert(self, series: RecurringSeries, today: date) -> Optional[SeriesAlert]:
        if not self.is_dormant(series, today):
            return None
        idle_days = (today - series.last_occurrence_date).days
        return SeriesAlert(
            kind=AlertKind.DORMANT,
            series_key=series.series_key,
            detail=f"Possibly cancelled: no charge in {idle_days} days "
                   f"(last on {series.last_occurrence_date.isoformat()})"
        )

    def _amount_change_alert(self, series: RecurringSeries) -> Optional[SeriesAlert]:
        if series.amount_drift == 0:
            return None
        new_amount = series.expected_amount
        old_amount = new_amount - series.amount_drift
        return SeriesAlert(
            kind=AlertKind.AMOUNT_CHANGE,
            series_key=series.series_key,
            detail=f"${_money(old_amount)} -> ${_money(new_amount)}"
        )


def _money(amount: Decimal) -> str:
    return MONEY_FORMAT.format(amount)
