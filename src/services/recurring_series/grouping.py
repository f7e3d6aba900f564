"""
Series grouper for recurring series detection.

Partitions a transaction feed into candidate series keyed by a normalized
merchant or income-source label.
"""

import logging
import re
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from models.transaction import FeedTransaction, SignConvention

logger = logging.getLogger(__name__)

Normalizer = Callable[[str], str]

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_LONG_ID = re.compile(r"\d{6,}")
_PAYROLL_TERMS = re.compile(r"\b(payroll|deposit|direct|payment|transfer)\b", re.IGNORECASE)
_PUNCTUATION = re.compile(r"[^\w\s]")


def default_normalizer(label: str) -> str:
    """Case-insensitive key with surrounding whitespace trimmed and runs collapsed."""
    return " ".join(label.split()).lower()


def income_source_normalizer(label: str) -> str:
    """
    Normalize a deposit description into an income-source key.

    Strips ISO dates, long reference numbers, generic payroll words and
    punctuation so that "ACME PAYROLL 2024-01-15 #883021" and
    "Acme Payroll" land in the same series. Falls back to the default
    normalization when nothing would be left.
    """
    cleaned = _ISO_DATE.sub("", label)
    cleaned = _LONG_ID.sub("", cleaned)
    cleaned = _PAYROLL_TERMS.sub("", cleaned)
    cleaned = _PUNCTUATION.sub(" ", cleaned)
    key = default_normalizer(cleaned)
    return key or default_normalizer(label)


class SeriesGrouper:
    """
    Groups transactions into candidate series.

    Each transaction lands in at most one series. Transactions rejected by
    the sign convention, below ``min_amount`` in magnitude, or whose label
    normalizes to an empty key are skipped.
    """

    def __init__(
        self,
        normalizer: Optional[Normalizer] = None,
        sign: SignConvention = SignConvention.ANY,
        min_amount: Optional[Decimal] = None
    ):
        """
        Initialize the grouper.

        Args:
            normalizer: Maps a raw label to a series key (default: default_normalizer)
            sign: Which amounts are considered
            min_amount: Optional minimum magnitude, e.g. 100 for income detection
        """
        self.normalizer = normalizer or default_normalizer
        self.sign = sign
        self.min_amount = min_amount

    def group(self, transactions: Iterable[FeedTransaction]) -> Dict[str, List[FeedTransaction]]:
        """
        Partition transactions by series key.

        Args:
            transactions: Feed transactions in any order

        Returns:
            Mapping of series key to its transactions sorted ascending by date
        """
        groups: Dict[str, List[FeedTransaction]] = {}
        skipped = 0

        for txn in transactions:
            if not self.sign.accepts(txn.amount):
                skipped += 1
                continue
            if self.min_amount is not None and txn.magnitude < self.min_amount:
                skipped += 1
                continue
            key = self.normalizer(txn.label)
            if not key:
                skipped += 1
                continue
            groups.setdefault(key, []).append(txn)

        for key in groups:
            # Stable sort keeps same-day feed order deterministic
            groups[key].sort(key=lambda t: t.date)

        logger.debug(
            f"Grouped transactions into {len(groups)} candidate series ({skipped} skipped)",
            extra={"sign": self.sign.value, "series_count": len(groups), "skipped": skipped}
        )
        return groups


def group_transactions(
    transactions: Iterable[FeedTransaction],
    normalizer: Optional[Normalizer] = None,
    sign: SignConvention = SignConvention.ANY
) -> Dict[str, List[FeedTransaction]]:
    """Convenience wrapper around ``SeriesGrouper.group``."""
    return SeriesGrouper(normalizer=normalizer, sign=sign).group(transactions)
