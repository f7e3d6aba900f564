"""
Unit tests for ShortHorizonForecaster.
"""

import pytest
from datetime import date
from decimal import Decimal

from models.transaction import SignConvention
from services.recurring_series.config import ShortHorizonConfig
from services.recurring_series.short_horizon import ShortHorizonForecaster
from tests.fixtures.recurring_series_fixtures import create_transaction


@pytest.fixture
def forecaster():
    return ShortHorizonForecaster()


class TestShortHorizonForecaster:
    """Test cases for the day-of-month window forecast."""

    def test_two_month_merchant_predicted(self, forecaster):
        """Charges on the 14th and 13th predict the 14th of the next month."""
        transactions = [
            create_transaction(date(2024, 1, 14), "Acme", "9.99"),
            create_transaction(date(2024, 2, 13), "Acme", "9.99"),
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 13))

        assert len(forecast.predictions) == 1
        prediction = forecast.predictions[0]
        assert prediction.series_key == "acme"
        assert prediction.date == date(2024, 3, 14)
        assert prediction.amount == Decimal("9.99")
        assert forecast.total_amount == Decimal("9.99")

    def test_already_charged_this_month_suppressed(self, forecaster):
        transactions = [
            create_transaction(date(2024, 1, 14), "Acme", "9.99"),
            create_transaction(date(2024, 2, 14), "Acme", "9.99"),
            create_transaction(date(2024, 3, 12), "Acme", "9.99"),
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 13))

        assert forecast.predictions == []
        assert forecast.total_amount == Decimal("0")

    def test_merchant_predicted_at_most_once(self, forecaster):
        transactions = [
            create_transaction(date(2024, month, day), "Gym", "20.00")
            for month in (1, 2)
            for day in (14, 15, 16, 17)
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 12))

        assert [p.series_key for p in forecast.predictions] == ["gym"]
        assert forecast.predictions[0].date == date(2024, 3, 13)

    def test_single_month_not_enough(self, forecaster):
        transactions = [
            create_transaction(date(2024, 2, 13), "Acme", "9.99"),
            create_transaction(date(2024, 2, 14), "Acme", "9.99"),
        ]

        assert forecaster.forecast(transactions, date(2024, 3, 13)).predictions == []

    def test_latest_month_amount_used(self, forecaster):
        transactions = [
            create_transaction(date(2024, 2, 13), "Acme", "10.99"),
            create_transaction(date(2024, 1, 14), "Acme", "9.99"),
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 13))

        assert forecast.predictions[0].amount == Decimal("10.99")

    def test_future_history_ignored(self, forecaster):
        transactions = [
            create_transaction(date(2024, 1, 14), "Acme", "9.99"),
            create_transaction(date(2024, 2, 13), "Acme", "9.99"),
            create_transaction(date(2024, 3, 14), "Acme", "9.99"),
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 13))

        assert len(forecast.predictions) == 1

    def test_window_crosses_month_boundary(self, forecaster):
        """Targets in the next month are checked against that month."""
        transactions = [
            create_transaction(date(2024, month, 2), "Rent", "1500.00")
            for month in (1, 2, 3)
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 29))

        assert len(forecast.predictions) == 1
        assert forecast.predictions[0].date == date(2024, 4, 1)

    def test_window_does_not_wrap_month_end(self):
        """Charges on the 1st do not match targets at the end of the previous month."""
        transactions = [
            create_transaction(date(2024, 1, 1), "Rent", "1500.00"),
            create_transaction(date(2024, 2, 1), "Rent", "1500.00"),
        ]

        forecast = ShortHorizonForecaster(ShortHorizonConfig(days=3)).forecast(transactions, date(2024, 3, 28))

        assert forecast.predictions == []

    def test_ordering_and_total(self, forecaster):
        transactions = [
            create_transaction(date(2024, 1, 14), "Small", "5.00"),
            create_transaction(date(2024, 2, 14), "Small", "5.00"),
            create_transaction(date(2024, 1, 14), "Big", "50.00"),
            create_transaction(date(2024, 2, 14), "Big", "50.00"),
            create_transaction(date(2024, 1, 10), "Early", "1.00"),
            create_transaction(date(2024, 2, 10), "Early", "1.00"),
        ]

        forecast = forecaster.forecast(transactions, date(2024, 3, 5))

        assert [p.series_key for p in forecast.predictions] == ["early", "big", "small"]
        assert forecast.total_amount == Decimal("56.00")

    def test_sign_convention(self, forecaster):
        transactions = [
            create_transaction(date(2024, 1, 14), "Acme", "-9.99"),
            create_transaction(date(2024, 2, 13), "Acme", "-9.99"),
        ]

        assert forecaster.forecast(transactions, date(2024, 3, 13), sign=SignConvention.POSITIVE).predictions == []
        forecast = forecaster.forecast(transactions, date(2024, 3, 13), sign=SignConvention.NEGATIVE)
        assert forecast.predictions[0].amount == Decimal("9.99")

    def test_custom_config(self):
        forecaster = ShortHorizonForecaster(ShortHorizonConfig(days=1, day_tolerance=0, min_distinct_months=1))
        transactions = [create_transaction(date(2024, 2, 20), "Acme", "3.00")]

        assert forecaster.forecast(transactions, date(2024, 3, 18)).predictions == []
        assert len(forecaster.forecast(transactions, date(2024, 3, 19)).predictions) == 1

    def test_empty_feed(self, forecaster):
        forecast = forecaster.forecast([], date(2024, 3, 13))
        assert forecast.predictions == []
        assert forecast.total_amount == Decimal("0")
