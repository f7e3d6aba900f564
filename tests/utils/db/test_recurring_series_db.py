"""
Unit tests for recurring series database operations.

Tests cover:
- get_series_from_db / checked_mandatory_series
- list_series_by_user_from_db (pagination and active filter)
- save_series_in_db (optimistic versioning)
- deactivate_series_in_db
- commit_merge_in_db (single transaction, conflict handling)
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from models.recurring_series import SeriesStatus
from utils.db.base import ConflictError, NotAuthorized, NotFound
from utils.db.recurring_series import (
    checked_mandatory_series,
    commit_merge_in_db,
    deactivate_series_in_db,
    get_series_from_db,
    list_series_by_user_from_db,
    save_series_in_db,
)
from tests.fixtures.recurring_series_fixtures import create_series


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def mock_tables():
    """Mock the DynamoDB tables singleton."""
    with patch('utils.db.recurring_series.tables') as mock:
        mock.recurring_series = MagicMock()
        mock.recurring_series.name = "recurring-series-test"
        yield mock


@pytest.fixture
def sample_series():
    return create_series(version=2)


class TestGetSeries:
    """Tests for reading series."""

    def test_get_series_found(self, mock_tables, sample_series):
        """Item is converted back into a RecurringSeries."""
        mock_tables.recurring_series.get_item.return_value = {'Item': sample_series.to_dynamodb_item()}

        result = get_series_from_db("user123", "netflix")

        assert result is not None
        assert result.series_key == "netflix"
        mock_tables.recurring_series.get_item.assert_called_once_with(
            Key={'userId': 'user123', 'seriesKey': 'netflix'}
        )

    def test_get_series_not_found(self, mock_tables):
        mock_tables.recurring_series.get_item.return_value = {}

        assert get_series_from_db("user123", "missing") is None

    def test_get_series_table_not_initialized(self, mock_tables):
        mock_tables.recurring_series = None

        assert get_series_from_db("user123", "netflix") is None

    def test_checked_mandatory_series_not_found(self, mock_tables):
        mock_tables.recurring_series.get_item.return_value = {}

        with pytest.raises(NotFound):
            checked_mandatory_series("user123", "missing")

    def test_checked_mandatory_series_wrong_user(self, mock_tables, sample_series):
        mock_tables.recurring_series.get_item.return_value = {'Item': sample_series.to_dynamodb_item()}

        with pytest.raises(NotAuthorized):
            checked_mandatory_series("someone-else", "netflix")


class TestListSeries:
    """Tests for listing series by user."""

    def test_paginates(self, mock_tables):
        """Every page of the query is read."""
        first = create_series(series_key="a").to_dynamodb_item()
        second = create_series(series_key="b", status=SeriesStatus.INACTIVE).to_dynamodb_item()
        mock_tables.recurring_series.query.side_effect = [
            {'Items': [first], 'LastEvaluatedKey': {'userId': 'user123', 'seriesKey': 'a'}},
            {'Items': [second]},
        ]

        result = list_series_by_user_from_db("user123")

        assert [s.series_key for s in result] == ["a", "b"]
        assert mock_tables.recurring_series.query.call_count == 2
        second_call = mock_tables.recurring_series.query.call_args_list[1][1]
        assert second_call['ExclusiveStartKey'] == {'userId': 'user123', 'seriesKey': 'a'}

    def test_active_filter(self, mock_tables):
        mock_tables.recurring_series.query.return_value = {'Items': [
            create_series(series_key="a").to_dynamodb_item(),
            create_series(series_key="b", status=SeriesStatus.MERGED, merged_into="a").to_dynamodb_item(),
        ]}

        assert [s.series_key for s in list_series_by_user_from_db("user123", active=True)] == ["a"]
        assert [s.series_key for s in list_series_by_user_from_db("user123", active=False)] == ["b"]

    def test_table_not_initialized(self, mock_tables):
        mock_tables.recurring_series = None

        assert list_series_by_user_from_db("user123") == []


class TestSaveSeries:
    """Tests for optimistic saves."""

    def test_save_bumps_version(self, mock_tables, sample_series):
        result = save_series_in_db(sample_series)

        assert result.version == 3
        assert sample_series.version == 2
        call_args = mock_tables.recurring_series.put_item.call_args
        assert call_args[1]['Item']['version'] == 3
        assert call_args[1]['Item']['seriesKey'] == "netflix"
        assert 'ConditionExpression' in call_args[1]

    def test_save_conflict(self, mock_tables, sample_series):
        """A failed version condition surfaces as ConflictError."""
        mock_tables.recurring_series.put_item.side_effect = client_error("ConditionalCheckFailedException")

        with pytest.raises(ConflictError):
            save_series_in_db(sample_series)

    def test_save_other_client_error_propagates(self, mock_tables, sample_series):
        mock_tables.recurring_series.put_item.side_effect = client_error("ValidationException")

        with pytest.raises(ClientError):
            save_series_in_db(sample_series)

    def test_save_requires_user(self, mock_tables):
        with pytest.raises(ValueError):
            save_series_in_db(create_series(user_id=None))

    def test_save_table_not_initialized(self, mock_tables, sample_series):
        mock_tables.recurring_series = None

        with pytest.raises(ConnectionError, match="Database table not initialized"):
            save_series_in_db(sample_series)


class TestDeactivateSeries:
    """Tests for deactivation."""

    def test_deactivate(self, mock_tables, sample_series):
        item = sample_series.model_copy(
            update={"status": SeriesStatus.INACTIVE, "version": 3}
        ).to_dynamodb_item()
        mock_tables.recurring_series.update_item.return_value = {'Attributes': item}

        result = deactivate_series_in_db("user123", "netflix", expected_version=2)

        assert result.status == SeriesStatus.INACTIVE
        assert result.version == 3
        kwargs = mock_tables.recurring_series.update_item.call_args[1]
        assert kwargs['ExpressionAttributeValues'][':inactive'] == "inactive"
        assert kwargs['ReturnValues'] == "ALL_NEW"

    def test_deactivate_version_conflict(self, mock_tables, sample_series):
        mock_tables.recurring_series.update_item.side_effect = client_error(
            "ConditionalCheckFailedException", "UpdateItem"
        )
        mock_tables.recurring_series.get_item.return_value = {'Item': sample_series.to_dynamodb_item()}

        with pytest.raises(ConflictError):
            deactivate_series_in_db("user123", "netflix", expected_version=1)

    def test_deactivate_missing(self, mock_tables):
        mock_tables.recurring_series.update_item.side_effect = client_error(
            "ConditionalCheckFailedException", "UpdateItem"
        )
        mock_tables.recurring_series.get_item.return_value = {}

        with pytest.raises(NotFound):
            deactivate_series_in_db("user123", "missing", expected_version=0)


class TestCommitMerge:
    """Tests for the transactional merge commit."""

    @pytest.fixture
    def merge_inputs(self):
        survivor = create_series(series_key="netflix", version=4, source_keys=["netflix", "netflix-com"])
        absorbed = [
            create_series(series_key="netflix-com", version=1, status=SeriesStatus.MERGED, merged_into="netflix")
        ]
        return survivor, absorbed

    def test_single_transaction(self, mock_tables, merge_inputs):
        """Survivor put and absorbed updates go into one transact_write_items call."""
        survivor, absorbed = merge_inputs

        result = commit_merge_in_db(survivor, absorbed)

        assert result.version == 5
        mock_tables.client.transact_write_items.assert_called_once()
        items = mock_tables.client.transact_write_items.call_args[1]['TransactItems']
        assert len(items) == 2
        assert items[0]['Put']['TableName'] == "recurring-series-test"
        assert items[0]['Put']['Item']['seriesKey'] == {'S': 'netflix'}
        update = items[1]['Update']
        assert update['Key'] == {'userId': {'S': 'user123'}, 'seriesKey': {'S': 'netflix-com'}}
        assert "#status = :active" in update['ConditionExpression']
        assert update['ExpressionAttributeValues'][':expected'] == {'N': '1'}
        assert update['ExpressionAttributeValues'][':merged'] == {'S': 'merged'}

    def test_new_survivor_may_not_exist_yet(self, mock_tables):
        survivor = create_series(series_key="combined", version=0)
        absorbed = [create_series(series_key="a"), create_series(series_key="b")]

        commit_merge_in_db(survivor, absorbed)

        items = mock_tables.client.transact_write_items.call_args[1]['TransactItems']
        assert "attribute_not_exists(seriesKey)" in items[0]['Put']['ConditionExpression']
        assert len(items) == 3

    def test_cancelled_transaction_is_conflict(self, mock_tables, merge_inputs):
        """An overlapping merge cancels the transaction; nothing is written."""
        survivor, absorbed = merge_inputs
        mock_tables.client.transact_write_items.side_effect = client_error(
            "TransactionCanceledException", "TransactWriteItems"
        )

        with pytest.raises(ConflictError):
            commit_merge_in_db(survivor, absorbed)

    def test_cross_user_absorb_rejected(self, mock_tables, merge_inputs):
        survivor, _ = merge_inputs
        other = create_series(series_key="other", user_id="user999")

        with pytest.raises(NotAuthorized):
            commit_merge_in_db(survivor, [other])
        mock_tables.client.transact_write_items.assert_not_called()

    def test_occurrence_dates_serialized(self, mock_tables):
        survivor = create_series(dates=[date(2024, 1, 1), date(2024, 2, 1)])

        commit_merge_in_db(survivor, [create_series(series_key="dup")])

        item = mock_tables.client.transact_write_items.call_args[1]['TransactItems'][0]['Put']['Item']
        first = item['occurrences']['L'][0]['M']
        assert first['date'] == {'S': '2024-01-01'}
        assert first['amount'] == {'N': '15.99'}
