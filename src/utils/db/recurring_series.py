"""
Recurring Series database operations.

This module persists RecurringSeries with optimistic concurrency: every
write is conditioned on the stored ``version`` and bumps it. Merges commit
the survivor and all absorbed series in a single DynamoDB transaction so
that overlapping merges cannot absorb the same series twice.

Key schema: ``userId`` (hash) / ``seriesKey`` (range).
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from models.recurring_series import RecurringSeries, SeriesStatus
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    check_user_owns_resource,
    error_code,
    NotFound,
    ConflictError,
)

logger = logging.getLogger(__name__)

# Constants
DB_TABLE_NOT_INITIALIZED_ERROR = "Database table not initialized"
CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"

_serializer = TypeSerializer()


def _table() -> Any:
    table = tables.recurring_series
    if not table:
        logger.error("DB: RecurringSeries table not initialized")
        raise ConnectionError(DB_TABLE_NOT_INITIALIZED_ERROR)
    return table


def _serialize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _serializer.serialize(value) for key, value in item.items()}


# ============================================================================
# Helper Functions
# ============================================================================

def checked_mandatory_series(user_id: str, series_key: str) -> RecurringSeries:
    """
    Check if a series exists and the user has access to it.

    Args:
        user_id: ID of the user requesting access
        series_key: Key of the series

    Returns:
        RecurringSeries object if found and authorized

    Raises:
        NotFound: If the series doesn't exist
        NotAuthorized: If the user doesn't own the series
    """
    if not series_key:
        raise NotFound("Series key is required")

    series = get_series_from_db(user_id, series_key)
    if not series:
        raise NotFound(f"Recurring series {series_key} not found")

    check_user_owns_resource(series.user_id, user_id)
    return series


# ============================================================================
# Series CRUD Operations
# ============================================================================

@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_series_from_db")
def get_series_from_db(user_id: str, series_key: str) -> Optional[RecurringSeries]:
    """
    Retrieve a recurring series by user and key.

    Returns:
        RecurringSeries if found, None otherwise
    """
    table = tables.recurring_series
    if not table:
        logger.error("DB: RecurringSeries table not initialized for get_series_from_db")
        return None

    logger.debug(f"DB: Getting series {series_key} for user {user_id}")
    response = table.get_item(Key={'userId': user_id, 'seriesKey': series_key})
    item = response.get('Item')

    if item:
        return RecurringSeries.from_dynamodb_item(item)
    return None


@monitor_performance(operation_type="query", warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_series_by_user_from_db")
def list_series_by_user_from_db(user_id: str, active: Optional[bool] = None) -> List[RecurringSeries]:
    """
    List recurring series for a user.

    Args:
        user_id: The user ID
        active: If True, only active series; if False, only inactive or
            merged ones; if None, all

    Returns:
        List of RecurringSeries objects
    """
    table = tables.recurring_series
    if not table:
        logger.error("DB: RecurringSeries table not initialized for list_series_by_user_from_db")
        return []

    logger.debug(f"DB: Listing series for user {user_id}, active: {active}")

    query_params: Dict[str, Any] = {'KeyConditionExpression': Key('userId').eq(user_id)}
    items: List[Dict[str, Any]] = []
    while True:
        response = table.query(**query_params)
        items.extend(response.get('Items', []))
        last_key = response.get('LastEvaluatedKey')
        if not last_key:
            break
        query_params['ExclusiveStartKey'] = last_key

    series = [RecurringSeries.from_dynamodb_item(item) for item in items]
    if active is not None:
        series = [s for s in series if s.active == active]

    logger.info(f"DB: Found {len(series)} series for user {user_id}")
    return series


@monitor_performance(warn_threshold_ms=300)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("save_series_in_db")
def save_series_in_db(series: RecurringSeries) -> RecurringSeries:
    """
    Save a series if nobody else has written it since it was read.

    The write succeeds when the stored version equals ``series.version``
    (or, for version 0, when no item exists yet).

    Args:
        series: Series carrying the version it was read at

    Returns:
        Copy of the series with its version bumped

    Raises:
        ConflictError: If the stored version differs
        ConnectionError: If table not initialized
    """
    if not series.user_id:
        raise ValueError("Series must have a user_id to be persisted")

    table = _table()
    saved = series.model_copy(update={"version": series.version + 1})

    condition = Attr('version').eq(series.version)
    if series.version == 0:
        condition = Attr('seriesKey').not_exists() | condition

    try:
        table.put_item(Item=saved.to_dynamodb_item(), ConditionExpression=condition)
    except ClientError as e:
        if error_code(e) == CONDITIONAL_CHECK_FAILED:
            raise ConflictError(
                f"Series {series.series_key} was modified concurrently (expected version {series.version})"
            ) from e
        raise

    logger.info(f"DB: Series {series.series_key} saved at version {saved.version} for user {series.user_id}")
    return saved


@monitor_performance(warn_threshold_ms=300)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("deactivate_series_in_db")
def deactivate_series_in_db(user_id: str, series_key: str, expected_version: int) -> RecurringSeries:
    """
    Mark a series inactive. Series are never deleted.

    Raises:
        ConflictError: If the stored version differs from ``expected_version``
        NotFound: If the series doesn't exist
    """
    table = _table()
    try:
        response = table.update_item(
            Key={'userId': user_id, 'seriesKey': series_key},
            UpdateExpression="SET #status = :inactive, version = version + :one",
            ConditionExpression=Attr('seriesKey').exists() & Attr('version').eq(expected_version),
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={':inactive': SeriesStatus.INACTIVE.value, ':one': 1},
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if error_code(e) == CONDITIONAL_CHECK_FAILED:
            if get_series_from_db(user_id, series_key) is None:
                raise NotFound(f"Recurring series {series_key} not found") from e
            raise ConflictError(
                f"Series {series_key} was modified concurrently (expected version {expected_version})"
            ) from e
        raise

    logger.info(f"DB: Series {series_key} deactivated for user {user_id}")
    return RecurringSeries.from_dynamodb_item(response['Attributes'])


@monitor_performance(operation_type="transaction", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("commit_merge_in_db")
def commit_merge_in_db(survivor: RecurringSeries, absorbed: Sequence[RecurringSeries]) -> RecurringSeries:
    """
    Commit a merge as one all-or-nothing transaction.

    The survivor is written conditionally on its version. Every absorbed
    series is updated to ``merged`` only if it is still active and still at
    the version it was read at.

    Args:
        survivor: Merged series produced by the merge service
        absorbed: Input series that were folded into the survivor

    Returns:
        Survivor with its version bumped

    Raises:
        ConflictError: If any condition fails; nothing is written
    """
    table = _table()
    table_name = table.name
    saved = survivor.model_copy(update={"version": survivor.version + 1})

    survivor_condition = "version = :expected"
    if survivor.version == 0:
        survivor_condition = "attribute_not_exists(seriesKey) OR version = :expected"

    items: List[Dict[str, Any]] = [{
        'Put': {
            'TableName': table_name,
            'Item': _serialize(saved.to_dynamodb_item()),
            'ConditionExpression': survivor_condition,
            'ExpressionAttributeValues': _serialize({':expected': survivor.version}),
        }
    }]
    for series in absorbed:
        check_user_owns_resource(series.user_id, survivor.user_id)
        items.append({
            'Update': {
                'TableName': table_name,
                'Key': _serialize({'userId': series.user_id, 'seriesKey': series.series_key}),
                'UpdateExpression': "SET #status = :merged, mergedInto = :survivor, version = version + :one",
                'ConditionExpression': "version = :expected AND #status = :active",
                'ExpressionAttributeNames': {'#status': 'status'},
                'ExpressionAttributeValues': _serialize({
                    ':merged': SeriesStatus.MERGED.value,
                    ':active': SeriesStatus.ACTIVE.value,
                    ':survivor': survivor.series_key,
                    ':one': 1,
                    ':expected': series.version,
                }),
            }
        })

    try:
        tables.client.transact_write_items(TransactItems=items)
    except ClientError as e:
        if error_code(e) == TRANSACTION_CANCELED:
            raise ConflictError(
                f"Merge into {survivor.series_key} conflicted with a concurrent change"
            ) from e
        raise

    logger.info(
        f"DB: Merge committed: {len(absorbed)} series absorbed into {survivor.series_key} "
        f"for user {survivor.user_id}"
    )
    return saved
