"""
Database utilities for DynamoDB operations.

This module provides a clean interface for all database operations.
Imports are organized by resource type for easy navigation.
"""

# ============================================================================
# Core Infrastructure
# ============================================================================

from .base import (
    # Table management
    tables,
    DynamoDBTables,

    # Exceptions
    NotAuthorized,
    NotFound,
    ConflictError,

    # Decorators
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,

    # Helper functions
    check_user_owns_resource,
)

# ============================================================================
# Recurring Series Operations
# ============================================================================

from .recurring_series import (
    checked_mandatory_series,
    get_series_from_db,
    list_series_by_user_from_db,
    save_series_in_db,
    deactivate_series_in_db,
    commit_merge_in_db,
)

__all__ = [
    'tables',
    'DynamoDBTables',
    'NotAuthorized',
    'NotFound',
    'ConflictError',
    'dynamodb_operation',
    'retry_on_throttle',
    'monitor_performance',
    'check_user_owns_resource',
    'checked_mandatory_series',
    'get_series_from_db',
    'list_series_by_user_from_db',
    'save_series_in_db',
    'deactivate_series_in_db',
    'commit_merge_in_db',
]
