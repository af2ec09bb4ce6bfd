"""
Record store abstraction.

Every service talks to persistence through the narrow RecordStore protocol:
get, put (optionally only-if-absent), atomic_update and equality query.
InMemoryStore backs tests and local runs; DynamoDBStore backs deployments.
"""

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .base import (
    tables,
    DynamoDBTables,
    dynamodb_operation,
    is_conditional_check_failure,
    monitor_performance,
    ConflictError,
)
from .helpers import collect_items

logger = logging.getLogger(__name__)

Item = Dict[str, Any]
Mutator = Callable[[Optional[Item]], Optional[Item]]

# Collections
USERS = "users"
RAW_EVENTS = "raw_events"
CANDIDATES = "candidates"
SUBSCRIPTIONS = "subscriptions"
PRICE_HISTORY = "price_history"
AUDIT_LOGS = "audit_logs"
DUPLICATE_CHARGES = "duplicate_charges"

RECORD_KEY_ATTR = "recordKey"
VERSION_ATTR = "version"
USER_INDEX = "UserIdIndex"


class RecordStore(Protocol):
    """Store interface the detection core depends on."""

    def get(self, collection: str, key: str) -> Optional[Item]:
        ...

    def put(self, collection: str, key: str, item: Item, if_absent: bool = False) -> bool:
        """Write item; with if_absent, only when the key is unused. Returns whether it wrote."""
        ...

    def atomic_update(self, collection: str, key: str, mutator: Mutator) -> Optional[Item]:
        """
        Read-modify-write a single record atomically.

        mutator receives a copy of the current item (None if absent) and
        returns the replacement, or None to leave the record untouched.
        Exceptions raised by mutator propagate and nothing is written.
        Returns the record as stored after the call.
        """
        ...

    def query(self, collection: str, **equals: Any) -> List[Item]:
        """Return items whose attributes equal every given value."""
        ...


class InMemoryStore:
    """Thread-safe in-process store. A single lock serializes all writes."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Item]] = {}
        self._lock = threading.RLock()

    def _collection(self, collection: str) -> Dict[str, Item]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, key: str) -> Optional[Item]:
        with self._lock:
            item = self._collection(collection).get(key)
            return copy.deepcopy(item)

    def put(self, collection: str, key: str, item: Item, if_absent: bool = False) -> bool:
        with self._lock:
            records = self._collection(collection)
            if if_absent and key in records:
                logger.debug(f"Skipped put of existing {collection}/{key}")
                return False
            records[key] = copy.deepcopy(item)
            return True

    def atomic_update(self, collection: str, key: str, mutator: Mutator) -> Optional[Item]:
        with self._lock:
            records = self._collection(collection)
            current = copy.deepcopy(records.get(key))
            updated = mutator(copy.deepcopy(current))
            if updated is None:
                return current
            records[key] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    def query(self, collection: str, **equals: Any) -> List[Item]:
        with self._lock:
            return [
                copy.deepcopy(item)
                for item in self._collection(collection).values()
                if all(item.get(name) == value for name, value in equals.items())
            ]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collection(collection))


class DynamoDBStore:
    """
    DynamoDB-backed store.

    Each collection is a table keyed by a string recordKey with a userId
    GSI. atomic_update is an optimistic compare-and-swap on an opaque
    version token; losing the race raises ConflictError.
    """

    def __init__(self, table_registry: Optional[DynamoDBTables] = None):
        self._tables = table_registry or tables

    def _table(self, collection: str) -> Any:
        table = self._tables.get(collection)
        if not table:
            logger.error(f"DB: {collection} table not initialized")
            raise ConnectionError(f"Database table not initialized: {collection}")
        return table

    @staticmethod
    def _strip(raw: Optional[Item]) -> Optional[Item]:
        if raw is None:
            return None
        return {k: v for k, v in raw.items() if k not in (RECORD_KEY_ATTR, VERSION_ATTR)}

    def _get_raw(self, collection: str, key: str) -> Optional[Item]:
        response = self._table(collection).get_item(
            Key={RECORD_KEY_ATTR: key},
            ConsistentRead=True
        )
        return response.get('Item')

    @monitor_performance(warn_threshold_ms=200)
    @dynamodb_operation("store_get")
    def get(self, collection: str, key: str) -> Optional[Item]:
        return self._strip(self._get_raw(collection, key))

    @monitor_performance(warn_threshold_ms=300)
    @dynamodb_operation("store_put")
    def put(self, collection: str, key: str, item: Item, if_absent: bool = False) -> bool:
        record = {**item, RECORD_KEY_ATTR: key, VERSION_ATTR: uuid.uuid4().hex}
        if not if_absent:
            self._table(collection).put_item(Item=record)
            return True

        table = self._table(collection)
        try:
            table.put_item(Item=record, ConditionExpression=Attr(RECORD_KEY_ATTR).not_exists())
        except ClientError as e:
            if not is_conditional_check_failure(e):
                raise
            logger.debug(f"DB: {collection}/{key} already exists, put skipped")
            return False
        return True

    @monitor_performance(warn_threshold_ms=500)
    @dynamodb_operation("store_atomic_update")
    def atomic_update(self, collection: str, key: str, mutator: Mutator) -> Optional[Item]:
        raw = self._get_raw(collection, key)
        current = self._strip(raw)
        updated = mutator(copy.deepcopy(current))
        if updated is None:
            return current

        if raw is None:
            condition = Attr(RECORD_KEY_ATTR).not_exists()
        elif VERSION_ATTR in raw:
            condition = Attr(VERSION_ATTR).eq(raw[VERSION_ATTR])
        else:
            condition = Attr(VERSION_ATTR).not_exists()

        record = {**updated, RECORD_KEY_ATTR: key, VERSION_ATTR: uuid.uuid4().hex}
        self._table(collection).put_item(Item=record, ConditionExpression=condition)
        logger.info(f"DB: {collection}/{key} updated")
        return updated

    @monitor_performance(warn_threshold_ms=500)
    @dynamodb_operation("store_query")
    def query(self, collection: str, **equals: Any) -> List[Item]:
        table = self._table(collection)
        filters = {name: value for name, value in equals.items() if name != 'userId'}

        filter_expression = None
        for name, value in filters.items():
            condition = Attr(name).eq(value)
            filter_expression = condition if filter_expression is None else filter_expression & condition

        params: Dict[str, Any] = {}
        if filter_expression is not None:
            params['FilterExpression'] = filter_expression

        if 'userId' in equals:
            params['IndexName'] = USER_INDEX
            params['KeyConditionExpression'] = Key('userId').eq(equals['userId'])
            items = collect_items(table.query, params, transform=self._strip)
        else:
            items = collect_items(table.scan, params, transform=self._strip)

        logger.debug(f"DB: Found {len(items)} {collection} records")
        return items


def atomic_update_with_reload(store: RecordStore, collection: str, key: str, mutator: Mutator) -> Optional[Item]:
    """
    atomic_update that re-reads and re-evaluates once after losing a race.

    The mutator sees the winner's state on the second pass, so a decision
    that became a no-op or an invalid transition is reported as such. A
    second loss propagates ConflictError to the caller.
    """
    try:
        return store.atomic_update(collection, key, mutator)
    except ConflictError:
        logger.info(f"Lost race on {collection}/{key}, re-evaluating against current state")
        return store.atomic_update(collection, key, mutator)
