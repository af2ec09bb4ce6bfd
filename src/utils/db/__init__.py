"""
Database access layer.

Services depend on the RecordStore protocol; the DynamoDB implementation
and its table registry live here alongside the shared exceptions.
"""

from .base import (
    NotFound,
    NotAuthorized,
    ConflictError,
    UnknownUser,
    UnknownCandidate,
    UnknownSubscription,
    Unauthorized,
    tables,
    check_user_owns_resource,
)
from .store import (
    RecordStore,
    InMemoryStore,
    DynamoDBStore,
    USERS,
    RAW_EVENTS,
    CANDIDATES,
    SUBSCRIPTIONS,
    PRICE_HISTORY,
    AUDIT_LOGS,
    DUPLICATE_CHARGES,
)
from .helpers import current_timestamp, add_days, MS_PER_DAY

__all__ = [
    'NotFound',
    'NotAuthorized',
    'ConflictError',
    'UnknownUser',
    'UnknownCandidate',
    'UnknownSubscription',
    'Unauthorized',
    'tables',
    'check_user_owns_resource',
    'RecordStore',
    'InMemoryStore',
    'DynamoDBStore',
    'USERS',
    'RAW_EVENTS',
    'CANDIDATES',
    'SUBSCRIPTIONS',
    'PRICE_HISTORY',
    'AUDIT_LOGS',
    'DUPLICATE_CHARGES',
    'current_timestamp',
    'add_days',
    'MS_PER_DAY',
]
