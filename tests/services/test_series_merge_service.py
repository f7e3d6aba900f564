"""
Unit tests for SeriesMergeService.

Covers union and re-classification, merge associativity, request validation
and the advisory duplicate suggestions.
"""

import pytest
from datetime import date
from decimal import Decimal

from models.recurring_series import Cadence, SeriesOccurrence, SeriesStatus
from services.recurring_series.merge_service import InvalidMergeRequest, SeriesMergeService
from tests.fixtures.recurring_series_fixtures import create_series

TODAY = date(2024, 3, 20)


@pytest.fixture
def merge_service():
    return SeriesMergeService()


@pytest.fixture
def paycheck_halves():
    """One bi-weekly paycheck split across two labels."""
    first = create_series(
        "acme payroll", Cadence.BI_WEEKLY,
        dates=[date(2024, 1, 5), date(2024, 1, 19), date(2024, 2, 2)],
        amount="1200.00", confidence_score=50,
    )
    second = create_series(
        "acme corp", Cadence.BI_WEEKLY,
        dates=[date(2024, 2, 16), date(2024, 3, 1), date(2024, 3, 15)],
        amount="1200.00", confidence_score=50,
    )
    return first, second


class TestMerge:
    """Test cases for merge."""

    def test_union_is_reclassified(self, merge_service, paycheck_halves):
        """Cadence and confidence come from the combined history."""
        result = merge_service.merge(list(paycheck_halves), TODAY)
        survivor = result.survivor

        assert len(survivor.occurrences) == 6
        assert survivor.cadence == Cadence.BI_WEEKLY
        assert survivor.confidence_score == 100
        assert survivor.expected_amount == Decimal("1200.00")
        assert survivor.last_occurrence_date == date(2024, 3, 15)
        assert survivor.next_predicted_date == date(2024, 3, 29)

    def test_deposit_label_variants_merge(self, merge_service):
        """A paycheck and its mobile-deposit variant become one bi-weekly series."""
        pay = create_series(
            "gca pay", Cadence.BI_WEEKLY,
            dates=[date(2024, 1, 5), date(2024, 1, 19), date(2024, 2, 2)],
            amount="1200.00", confidence_score=40,
        )
        deposit = create_series(
            "gca pay mobile deposit", Cadence.BI_WEEKLY,
            dates=[date(2024, 2, 16), date(2024, 3, 1), date(2024, 3, 15)],
            amount="1200.00", confidence_score=60,
        )

        survivor = merge_service.merge([pay, deposit], TODAY).survivor

        assert len(survivor.occurrences) == len(pay.occurrences) + len(deposit.occurrences)
        assert survivor.cadence == Cadence.BI_WEEKLY
        assert survivor.confidence_score != (pay.confidence_score + deposit.confidence_score) // 2
        assert survivor.confidence_score == 100
        assert survivor.source_keys == ["gca pay", "gca pay mobile deposit"]

    def test_survivor_defaults_to_first(self, merge_service, paycheck_halves):
        result = merge_service.merge(list(paycheck_halves), TODAY)

        assert result.survivor.series_key == "acme payroll"
        assert result.survivor.source_keys == ["acme payroll", "acme corp"]
        assert result.survivor.status == SeriesStatus.ACTIVE

    def test_absorbed_marked_merged(self, merge_service, paycheck_halves):
        first, second = paycheck_halves

        result = merge_service.merge([first, second], TODAY, survivor_key="acme corp")

        assert result.survivor.series_key == "acme corp"
        assert [s.series_key for s in result.absorbed] == ["acme payroll"]
        assert result.absorbed[0].status == SeriesStatus.MERGED
        assert result.absorbed[0].merged_into == "acme corp"
        assert first.status == SeriesStatus.ACTIVE

    def test_occurrences_tagged_with_origin(self, merge_service, paycheck_halves):
        result = merge_service.merge(list(paycheck_halves), TODAY)

        sources = {o.source_key for o in result.survivor.occurrences}
        assert sources == {"acme payroll", "acme corp"}

    def test_merge_is_associative(self, merge_service, paycheck_halves):
        """Merging A+B then C gives the same history as merging all three at once."""
        first, second = paycheck_halves
        third = create_series(
            "acme inc", Cadence.BI_WEEKLY,
            dates=[date(2024, 3, 29), date(2024, 4, 12)], amount="1250.00",
        )

        stepwise = merge_service.merge(
            [merge_service.merge([first, second], TODAY).survivor, third], TODAY
        ).survivor
        at_once = merge_service.merge([first, second, third], TODAY).survivor

        assert {(o.date, o.amount) for o in stepwise.occurrences} == \
            {(o.date, o.amount) for o in at_once.occurrences}
        assert stepwise.cadence == at_once.cadence
        assert stepwise.expected_amount == at_once.expected_amount

    def test_exact_duplicates_removed(self, merge_service):
        shared = SeriesOccurrence(date=date(2024, 1, 1), amount=Decimal("9.99"), source_key="a")
        first = create_series("a", occurrences=[shared])
        second = create_series("b", occurrences=[shared, SeriesOccurrence(date=date(2024, 2, 1), amount=Decimal("9.99"))])

        result = merge_service.merge([first, second], TODAY)

        assert len(result.survivor.occurrences) == 2

    def test_expected_amount_is_rounded_mean(self, merge_service):
        first = create_series("a", dates=[date(2024, 1, 15), date(2024, 2, 15)], amount="10.00")
        second = create_series("b", dates=[date(2024, 3, 15)], amount="10.01")

        result = merge_service.merge([first, second], TODAY)

        assert result.survivor.expected_amount == Decimal("10.00")

    def test_irregular_union_falls_back_to_majority(self, merge_service):
        first = create_series("a", Cadence.WEEKLY, dates=[date(2024, 1, 1), date(2024, 1, 8)])
        second = create_series("b", Cadence.WEEKLY, dates=[date(2024, 3, 1), date(2024, 3, 8)])
        third = create_series("c", Cadence.MONTHLY, dates=[date(2024, 4, 1), date(2024, 4, 2)])

        result = merge_service.merge([first, second, third], TODAY)

        assert result.survivor.cadence == Cadence.WEEKLY

    def test_majority_tie_prefers_shorter_period(self, merge_service):
        first = create_series("a", Cadence.MONTHLY, dates=[date(2024, 1, 1), date(2024, 1, 8)])
        second = create_series("b", Cadence.WEEKLY, dates=[date(2024, 3, 1), date(2024, 3, 8)])

        result = merge_service.merge([first, second], TODAY)

        assert result.survivor.cadence == Cadence.WEEKLY

    def test_irregular_input_stays_irregular(self, merge_service):
        first = create_series("a", Cadence.IRREGULAR, dates=[date(2024, 1, 1), date(2024, 1, 8)])
        second = create_series("b", Cadence.WEEKLY, dates=[date(2024, 3, 1), date(2024, 3, 8)])

        result = merge_service.merge([first, second], TODAY)

        assert result.survivor.cadence == Cadence.IRREGULAR
        assert result.survivor.next_predicted_date is None

    def test_keeps_survivor_version(self, merge_service, paycheck_halves):
        first, second = paycheck_halves
        first = first.model_copy(update={"version": 7})

        assert merge_service.merge([first, second], TODAY).survivor.version == 7


class TestMergeValidation:
    """Invalid requests are rejected and change nothing."""

    def test_requires_two_series(self, merge_service):
        with pytest.raises(InvalidMergeRequest):
            merge_service.merge([create_series("a")], TODAY)

    def test_duplicate_keys(self, merge_service):
        with pytest.raises(InvalidMergeRequest, match="more than once"):
            merge_service.merge([create_series("a"), create_series("a")], TODAY)

    def test_different_users(self, merge_service):
        with pytest.raises(InvalidMergeRequest, match="different users"):
            merge_service.merge([create_series("a"), create_series("b", user_id="other")], TODAY)

    @pytest.mark.parametrize("status", [SeriesStatus.INACTIVE, SeriesStatus.MERGED])
    def test_non_active_input(self, merge_service, status):
        with pytest.raises(InvalidMergeRequest, match="not active"):
            merge_service.merge([create_series("a"), create_series("b", status=status)], TODAY)

    def test_unknown_survivor(self, merge_service):
        with pytest.raises(InvalidMergeRequest, match="Survivor"):
            merge_service.merge([create_series("a"), create_series("b")], TODAY, survivor_key="c")

    def test_invalid_request_is_value_error(self):
        assert issubclass(InvalidMergeRequest, ValueError)

    def test_merge_by_keys(self, merge_service, paycheck_halves):
        available = {s.series_key: s for s in paycheck_halves}

        result = merge_service.merge_by_keys(available, ["acme corp", "acme payroll"], TODAY)

        assert result.survivor.series_key == "acme corp"

    def test_merge_by_keys_unknown(self, merge_service, paycheck_halves):
        available = {s.series_key: s for s in paycheck_halves}

        with pytest.raises(InvalidMergeRequest, match="Unknown"):
            merge_service.merge_by_keys(available, ["acme corp", "missing"], TODAY)


class TestSuggestDuplicates:
    """Test cases for the advisory duplicate heuristic."""

    def test_similar_amounts_suggested(self, merge_service):
        series = [
            create_series("netflix", amount="15.99"),
            create_series("netflix com", amount="15.49"),
        ]

        suggestions = merge_service.suggest_duplicates(series)

        assert len(suggestions) == 1
        assert suggestions[0].series_keys == ["netflix", "netflix com"]
        assert suggestions[0].cadence == Cadence.MONTHLY
        assert suggestions[0].amount_difference_pct == Decimal("3.13")

    def test_excluded_pairs(self, merge_service):
        series = [
            create_series("a", amount="10.00"),
            create_series("b", Cadence.WEEKLY, amount="10.00"),
            create_series("c", amount="10.00", user_id="other"),
            create_series("d", amount="10.00", status=SeriesStatus.INACTIVE),
            create_series("e", amount="20.00"),
            create_series("f", Cadence.IRREGULAR, amount="10.00"),
        ]

        assert merge_service.suggest_duplicates(series) == []

    def test_custom_tolerance(self, merge_service):
        series = [create_series("a", amount="10.00"), create_series("b", amount="11.00")]

        assert merge_service.suggest_duplicates(series) == []
        assert len(merge_service.suggest_duplicates(series, amount_tolerance_pct=Decimal("10"))) == 1

    def test_suggestions_do_not_mutate(self, merge_service):
        series = [create_series("a"), create_series("b")]

        merge_service.suggest_duplicates(series)

        assert all(s.status == SeriesStatus.ACTIVE for s in series)
