"""
Core database infrastructure.

Shared exceptions, the decorators wrapped around every DynamoDB store
call, and the lazily built registry of table resources.
"""

import os
import logging
import time
from typing import Dict, Any, Optional, Callable, TypeVar
from functools import wraps

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'

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
    """Raised when a conditional write loses to a concurrent writer."""
    pass


class UnknownUser(NotFound):
    pass

class UnknownCandidate(NotFound):
    pass

class UnknownSubscription(NotFound):
    pass

class Unauthorized(NotAuthorized):
    """Raised when a candidate or subscription belongs to another user."""
    pass


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == CONDITIONAL_CHECK_FAILED


# ============================================================================
# Decorators
# ============================================================================

def dynamodb_operation(operation_name: Optional[str] = None):
    """
    Translate botocore and pydantic failures raised by one store call.

    The wrapped method takes the collection as its first argument after self.
    - ConditionalCheckFailedException becomes ConflictError
    - pydantic ValidationError becomes ValueError
    - any other ClientError is logged with its code and re-raised

    Usage:
        @dynamodb_operation("store_get")
        def get(self, collection, key):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = operation_name or func.__name__

        @wraps(func)
        def wrapper(store: Any, collection: str, *args, **kwargs) -> T:
            try:
                return func(store, collection, *args, **kwargs)
            except ClientError as e:
                if is_conditional_check_failure(e):
                    logger.info(f"{name} on {collection}: conditional write lost")
                    raise ConflictError(f"{collection} record changed concurrently during {name}") from e
                error = e.response.get('Error', {})
                logger.error(
                    f"{name} on {collection} failed: {error.get('Code', 'Unknown')} - {error.get('Message', str(e))}",
                    exc_info=True,
                    extra={'operation': name, 'collection': collection, 'error_code': error.get('Code')}
                )
                raise
            except ValidationError as e:
                logger.error(f"{name} on {collection} got invalid data: {str(e)}")
                raise ValueError(f"Invalid {collection} data in {name}: {str(e)}") from e
        return wrapper
    return decorator


def monitor_performance(warn_threshold_ms: float = 1000, error_threshold_ms: float = 5000):
    """
    Log how long a store call took.

    Debug below warn_threshold_ms, warning up to error_threshold_ms and
    error beyond it.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - started) * 1000
                if elapsed_ms > error_threshold_ms:
                    level = logging.ERROR
                elif elapsed_ms > warn_threshold_ms:
                    level = logging.WARNING
                else:
                    level = logging.DEBUG
                logger.log(
                    level,
                    f"{func.__name__} took {elapsed_ms:.1f}ms (warn at {warn_threshold_ms}ms)",
                    extra={'operation': func.__name__, 'elapsed_ms': elapsed_ms}
                )
        return wrapper
    return decorator


# ============================================================================
# Table Management
# ============================================================================

class DynamoDBTables:
    """
    Process-wide registry of DynamoDB table resources, one per collection.

    Table names come from environment variables so each deployment stage
    points at its own tables. boto3 is not touched until a table is first
    requested, and a collection whose variable is unset has no table.
    """
    _instance: Optional['DynamoDBTables'] = None

    TABLE_ENV_VARS = {
        'users': 'USERS_TABLE',
        'raw_events': 'RAW_EVENTS_TABLE',
        'candidates': 'DETECTION_CANDIDATES_TABLE',
        'subscriptions': 'SUBSCRIPTIONS_TABLE',
        'price_history': 'PRICE_HISTORY_TABLE',
        'audit_logs': 'AUDIT_LOGS_TABLE',
        'duplicate_charges': 'DUPLICATE_CHARGES_TABLE',
    }

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._resource = None
            instance._tables = {}
            cls._instance = instance
        return cls._instance

    def table_name(self, collection: str) -> Optional[str]:
        env_var = self.TABLE_ENV_VARS.get(collection)
        if env_var is None:
            logger.error(f"No table configured for collection {collection}")
            return None
        name = os.environ.get(env_var)
        if not name:
            logger.warning(f"{env_var} is not set, {collection} table unavailable")
            return None
        return name

    def get(self, collection: str) -> Optional[Any]:
        table = self._tables.get(collection)
        if table is not None:
            return table

        name = self.table_name(collection)
        if name is None:
            return None
        if self._resource is None:
            self._resource = boto3.resource('dynamodb')
        table = self._tables[collection] = self._resource.Table(name)
        logger.info(f"Bound {collection} to table {name}")
        return table


tables = DynamoDBTables()


# ============================================================================
# Helper Functions
# ============================================================================

def check_user_owns_resource(resource_user_id: str, requesting_user_id: str) -> None:
    """
    Raises:
        Unauthorized: If the user doesn't own the resource
    """
    if resource_user_id != requesting_user_id:
        raise Unauthorized("Not authorized to access this resource")
