"""
Recurring Series Models.

This module provides Pydantic models for recurring series detection,
including the series itself, its occurrences, predicted occurrences,
alerts and the related enums.
"""

import logging
import datetime
from typing import Optional, List, Dict, Any
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from typing_extensions import Self

logger = logging.getLogger(__name__)

# Constants
CONFIDENCE_ERROR_MESSAGE = "confidence_score must be an integer between 0 and 100"
SERIES_KEY_ERROR_MESSAGE = "series_key must be a non-empty normalized label"


class Cadence(str, Enum):
    """Classified recurrence frequency of a series."""
    WEEKLY = "weekly"               # ~7 day intervals
    BI_WEEKLY = "bi-weekly"         # ~14 day intervals, same weekday
    SEMI_MONTHLY = "semi-monthly"   # 15th and last day of month
    MONTHLY = "monthly"             # same day each calendar month
    IRREGULAR = "irregular"         # No recognized cadence

    @property
    def period_days(self) -> int:
        """Nominal period used to order cadences from shortest to longest."""
        return _CADENCE_PERIOD_DAYS[self]

    @property
    def is_projectable(self) -> bool:
        return self is not Cadence.IRREGULAR


# Semi-monthly is ordered by its classification band (56-64 days), which
# places it after monthly when breaking ties.
_CADENCE_PERIOD_DAYS = {
    Cadence.WEEKLY: 7,
    Cadence.BI_WEEKLY: 14,
    Cadence.MONTHLY: 30,
    Cadence.SEMI_MONTHLY: 60,
    Cadence.IRREGULAR: 10_000,
}


class SeriesStatus(str, Enum):
    """Lifecycle status of a recurring series."""
    ACTIVE = "active"        # Tracked, projected and alerted on
    INACTIVE = "inactive"    # Excluded by the user
    MERGED = "merged"        # Absorbed into another series


class AlertKind(str, Enum):
    """Kind of pattern-break alert."""
    DORMANT = "dormant"
    AMOUNT_CHANGE = "amount_change"


class SeriesOccurrence(BaseModel):
    """One historical realization of a series."""
    date: datetime.date
    amount: Decimal
    account_ref: Optional[str] = Field(default=None, alias="accountRef")
    source_key: Optional[str] = Field(default=None, alias="sourceKey")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )

    @field_validator("amount", mode="before")
    @classmethod
    def ensure_amount_is_decimal(cls, v: Any) -> Decimal:
        if not isinstance(v, Decimal):
            try:
                return Decimal(str(v))
            except Exception as e:
                raise ValueError(f"Invalid amount value: {v}. Could not convert to Decimal.") from e
        return v


class RecurringSeries(BaseModel):
    """
    A recurring financial event tracked per merchant or income source.

    ``occurrences`` is kept in chronological order. ``last_occurrence_date``
    and ``next_predicted_date`` are derived and must be recomputed by the
    detection or merge services whenever the occurrences or the manual
    override change.
    """
    series_key: str = Field(alias="seriesKey")
    user_id: Optional[str] = Field(default=None, alias="userId")
    display_name: Optional[str] = Field(default=None, alias="displayName")

    cadence: Cadence
    expected_amount: Decimal = Field(alias="expectedAmount")
    confidence_score: int = Field(alias="confidenceScore", ge=0, le=100)
    occurrences: List[SeriesOccurrence] = Field(default_factory=list)

    last_occurrence_date: Optional[datetime.date] = Field(default=None, alias="lastOccurrenceDate")
    next_predicted_date: Optional[datetime.date] = Field(default=None, alias="nextPredictedDate")
    manual_override_date: Optional[datetime.date] = Field(default=None, alias="manualOverrideDate")

    amount_drift: Decimal = Field(default=Decimal("0"), alias="amountDrift")
    account_ref: Optional[str] = Field(default=None, alias="accountRef")

    status: SeriesStatus = SeriesStatus.ACTIVE
    merged_into: Optional[str] = Field(default=None, alias="mergedInto")
    source_keys: List[str] = Field(default_factory=list, alias="sourceKeys")
    version: int = Field(default=0, ge=0)

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str},
        use_enum_values=False  # Preserve enum objects (not strings) for type safety
    )

    @field_validator("series_key")
    @classmethod
    def validate_series_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError(SERIES_KEY_ERROR_MESSAGE)
        return v

    @field_validator("expected_amount", "amount_drift", mode="before")
    @classmethod
    def ensure_decimal(cls, v: Any) -> Decimal:
        if not isinstance(v, Decimal):
            try:
                return Decimal(str(v))
            except Exception as e:
                raise ValueError(f"Invalid amount value: {v}. Could not convert to Decimal.") from e
        return v

    @model_validator(mode="after")
    def sort_occurrences(self) -> Self:
        # Callers may append out of order; history is always chronological
        ordered = sorted(self.occurrences, key=lambda o: o.date)
        if ordered != self.occurrences:
            self.occurrences = ordered
        if self.occurrences and self.last_occurrence_date is None:
            self.last_occurrence_date = self.occurrences[-1].date
        return self

    @property
    def active(self) -> bool:
        return self.status == SeriesStatus.ACTIVE

    @property
    def occurrence_dates(self) -> List[datetime.date]:
        return [o.date for o in self.occurrences]

    @property
    def occurrence_amounts(self) -> List[Decimal]:
        return [o.amount for o in self.occurrences]

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")

        # Amounts go back in as Decimal, DynamoDB rejects floats
        data["expectedAmount"] = self.expected_amount
        data["amountDrift"] = self.amount_drift
        data["occurrences"] = [
            {**occ, "amount": Decimal(str(occ["amount"]))}
            for occ in data.get("occurrences", [])
        ]
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        for field in ("confidenceScore", "version"):
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])

        if "cadence" in converted_data and isinstance(converted_data["cadence"], str):
            try:
                converted_data["cadence"] = Cadence(converted_data["cadence"])
            except ValueError:
                logger.warning(f"Invalid Cadence value: {converted_data['cadence']}")
                converted_data["cadence"] = Cadence.IRREGULAR

        if "status" in converted_data and isinstance(converted_data["status"], str):
            try:
                converted_data["status"] = SeriesStatus(converted_data["status"])
            except ValueError:
                logger.warning(f"Invalid SeriesStatus value: {converted_data['status']}")
                converted_data["status"] = SeriesStatus.INACTIVE

        return cls.model_validate(converted_data)


class PredictedOccurrence(BaseModel):
    """A forecast occurrence of a series. Never persisted."""
    series_key: str = Field(alias="seriesKey")
    date: datetime.date
    amount: Decimal

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )


class MonthlyProjection(BaseModel):
    """Predicted occurrences of one calendar month, for calendar-style views."""
    month: str  # YYYY-MM
    occurrences: List[PredictedOccurrence]
    total: Decimal

    model_config = ConfigDict(json_encoders={Decimal: str})


class SeriesAlert(BaseModel):
    """A pattern-break alert. Recomputed on every evaluation pass."""
    kind: AlertKind
    series_key: str = Field(alias="seriesKey")
    detail: str

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        use_enum_values=False
    )


class ShortHorizonPrediction(BaseModel):
    """A merchant expected to charge within the short lookahead window."""
    series_key: str = Field(alias="seriesKey")
    date: datetime.date
    amount: Decimal

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={Decimal: str},
    )


class ShortHorizonForecast(BaseModel):
    """Result of one short-horizon forecasting run."""
    predictions: List[ShortHorizonPrediction] = Field(default_factory=list)
    total_amount: Decimal = Field(default=Decimal("0"), alias="totalAmount")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str},
    )


class DuplicateSuggestion(BaseModel):
    """
    Two series that look like the same event under different labels.

    Advisory only: nothing is merged until the caller asks for it.
    """
    series_keys: List[str] = Field(alias="seriesKeys")
    cadence: Cadence
    amount_difference_pct: Decimal = Field(alias="amountDifferencePct")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str},
    )
