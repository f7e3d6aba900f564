"""
Transaction feed models.

The engine never owns transactions: it receives a read-only snapshot from the
transaction store and converts each record into a ``FeedTransaction``.
"""

import logging
import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils.temporal_utils import to_date

logger = logging.getLogger(__name__)


class SignConvention(str, Enum):
    """Which side of the feed's sign convention a detection pass considers."""
    POSITIVE = "positive"   # e.g. spending when the feed reports charges as positive
    NEGATIVE = "negative"   # e.g. income when the feed reports deposits as negative
    ANY = "any"

    def accepts(self, amount: Decimal) -> bool:
        if self is SignConvention.POSITIVE:
            return amount > 0
        if self is SignConvention.NEGATIVE:
            return amount < 0
        return amount != 0


class FeedTransaction(BaseModel):
    """
    One record of the caller's transaction feed.

    Only ``date``, ``amount`` and ``label`` are required. ``label`` also
    accepts ``series_key``, ``merchant_name`` and ``name`` so that rows from
    the transaction store can be passed through unchanged.
    """
    date: datetime.date
    amount: Decimal
    label: str = Field(
        min_length=1,
        validation_alias=AliasChoices("label", "series_key", "seriesKey", "merchant_name", "name"),
    )
    account_ref: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("account_ref", "accountRef", "account_id"),
    )

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> datetime.date:
        return to_date(v)

    @field_validator("amount", mode="before")
    @classmethod
    def ensure_amount_is_decimal(cls, v: Any) -> Decimal:
        if isinstance(v, bool) or v is None:
            raise ValueError(f"Invalid amount value: {v}")
        if isinstance(v, Decimal):
            amount = v
        else:
            try:
                amount = Decimal(str(v))
            except InvalidOperation as e:
                raise ValueError(f"Invalid amount value: {v}. Could not convert to Decimal.") from e
        if not amount.is_finite():
            raise ValueError(f"Invalid amount value: {v}. Amount must be finite.")
        return amount

    @field_validator("label")
    @classmethod
    def label_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("label must not be blank")
        return v

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)


def parse_transactions(records: Iterable[Dict[str, Any]]) -> List[FeedTransaction]:
    """
    Convert raw feed records into ``FeedTransaction`` objects.

    Args:
        records: Dictionaries with at least date, amount and label

    Returns:
        Parsed transactions in input order

    Raises:
        ValueError: If any record is malformed. The message names the
            offending record's position in the feed.
    """
    parsed: List[FeedTransaction] = []
    for index, record in enumerate(records):
        if isinstance(record, FeedTransaction):
            parsed.append(record)
            continue
        try:
            parsed.append(FeedTransaction.model_validate(record))
        except ValidationError as e:
            logger.error(f"Malformed transaction at position {index}: {e}")
            raise ValueError(f"Malformed transaction at position {index}: {e}") from e
    return parsed
