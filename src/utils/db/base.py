"""
Core database infrastructure.

Table access, storage exceptions and the logging, retry and timing
decorators shared by the recurring series storage functions.
"""

import os
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar
from functools import wraps

import boto3
from botocore.exceptions import ClientError

# Configure logging
logger = logging.getLogger(__name__)

# Type variables
T = TypeVar('T')

# ============================================================================
# Exceptions
# ============================================================================

class NotAuthorized(Exception):
    """Raised when a user is not authorized to access a resource."""
    pass

class NotFound(Exception):
    """Raised when a requested resource is not found."""
    pass

class ConflictError(Exception):
    """Raised when there's a conflict (e.g., optimistic locking failure)."""
    pass


# ============================================================================
# Decorators
# ============================================================================

THROTTLE_CODES = (
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
)


def dynamodb_operation(operation_name: Optional[str] = None):
    """
    Log a series storage call and its failures.

    NotFound, NotAuthorized and ConflictError are logged as warnings and
    re-raised unchanged. A ClientError is logged with its DynamoDB error code
    and re-raised.

    Usage:
        @dynamodb_operation("get_series_from_db")
        def get_series_from_db(user_id: str, series_key: str) -> Optional[RecurringSeries]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = operation_name or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            logger.debug(f"Starting {name}")
            try:
                result = func(*args, **kwargs)
            except (NotFound, NotAuthorized, ConflictError) as e:
                logger.warning(f"{type(e).__name__} in {name}: {e}", extra={'operation': name})
                raise
            except ClientError as e:
                logger.error(
                    f"DynamoDB error in {name}: {error_code(e)}",
                    exc_info=True,
                    extra={'operation': name, 'error_code': error_code(e)}
                )
                raise
            logger.info(f"Completed {name}")
            return result
        return wrapper
    return decorator


def retry_on_throttle(max_attempts: int = 3, base_delay: float = 0.1, max_delay: float = 2.0):
    """
    Retry a storage call when DynamoDB throttles it.

    The delay doubles after every throttled attempt, capped at ``max_delay``.
    Any other ClientError, and the last throttled one, propagates.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except ClientError as e:
                    code = error_code(e)
                    if code not in THROTTLE_CODES or attempt >= max_attempts:
                        raise
                    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
                    logger.warning(
                        f"{func.__name__} throttled ({code}), attempt {attempt}/{max_attempts}, "
                        f"retrying in {delay:.2f}s"
                    )
                    time.sleep(delay)
                    attempt += 1
        return wrapper
    return decorator


def monitor_performance(
    operation_type: str = "db_operation",
    warn_threshold_ms: float = 1000,
    error_threshold_ms: float = 5000
):
    """
    Log how long a storage call took.

    Calls over ``error_threshold_ms`` log at error level, calls over
    ``warn_threshold_ms`` at warning level and the rest at debug level.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - started) * 1000
                context = {'operation': func.__name__, 'operation_type': operation_type, 'elapsed_ms': elapsed_ms}
                message = f"{func.__name__} took {elapsed_ms:.2f}ms"
                if elapsed_ms > error_threshold_ms:
                    logger.error(f"Very slow {operation_type}: {message}", extra=context)
                elif elapsed_ms > warn_threshold_ms:
                    logger.warning(f"Slow {operation_type}: {message}", extra=context)
                else:
                    logger.debug(message, extra=context)
        return wrapper
    return decorator


# ============================================================================
# Table Management
# ============================================================================

class DynamoDBTables:
    """
    Singleton for managing DynamoDB table resources.

    Features:
    - Lazy initialization (tables created on first access)
    - Singleton pattern (one instance per application)
    - Automatic table name lookup from environment variables

    Usage:
        tables = DynamoDBTables()
        series_table = tables.recurring_series
    """
    _instance: Optional['DynamoDBTables'] = None

    # Table name to environment variable mapping
    TABLE_CONFIGS = {
        'recurring_series': 'RECURRING_SERIES_TABLE',
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._dynamodb = None
            self._tables: Dict[str, Any] = {}
            self._initialized = True

    def _resource(self) -> Any:
        if self._dynamodb is None:
            self._dynamodb = boto3.resource('dynamodb')
        return self._dynamodb

    def _get_table(self, table_key: str) -> Optional[Any]:
        """Get table resource with lazy initialization."""
        if table_key not in self._tables:
            env_var_name = self.TABLE_CONFIGS.get(table_key)
            if not env_var_name:
                logger.error(f"Unknown table key: {table_key}")
                return None

            table_name = os.environ.get(env_var_name)
            if not table_name:
                logger.warning(
                    f"Environment variable {env_var_name} not set, "
                    f"table '{table_key}' unavailable"
                )
                return None

            self._tables[table_key] = self._resource().Table(table_name)
            logger.info(f"Initialized table: {table_key} ({table_name})")

        return self._tables.get(table_key)

    @property
    def recurring_series(self) -> Any:
        """Get recurring series table."""
        return self._get_table('recurring_series')

    @property
    def client(self) -> Any:
        """Low-level client for multi-item transactions."""
        return self._resource().meta.client

    def reinitialize(self):
        """Reinitialize DynamoDB resource (useful for testing)."""
        self._dynamodb = None
        self._tables.clear()
        logger.info("Reinitialized DynamoDB tables")


# Global instance
tables = DynamoDBTables()


# ============================================================================
# Helper Functions
# ============================================================================

def check_user_owns_resource(resource_user_id: Optional[str], requesting_user_id: str) -> None:
    """
    Check if a user owns a resource.

    Args:
        resource_user_id: User ID from the resource
        requesting_user_id: User ID making the request

    Raises:
        NotAuthorized: If the user doesn't own the resource
    """
    if resource_user_id != requesting_user_id:
        raise NotAuthorized("Not authorized to access this resource")


def error_code(error: ClientError) -> str:
    """Extract the DynamoDB error code from a ClientError."""
    return error.response.get('Error', {}).get('Code', 'Unknown')
