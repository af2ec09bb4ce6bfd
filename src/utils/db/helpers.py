"""
Helper functions for database operations.

Page-following reads over DynamoDB tables and the millisecond timestamp
arithmetic every record uses.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

Item = Dict[str, Any]

MS_PER_DAY = 24 * 60 * 60 * 1000


# ============================================================================
# Pagination
# ============================================================================

def iterate_pages(read: Callable[..., Dict[str, Any]], params: Dict[str, Any]) -> Iterator[List[Item]]:
    """
    Yield each page of a table.query or table.scan call.

    params is never mutated; the continuation key is passed on a fresh copy.
    """
    start_key = None
    pages = 0
    while True:
        call_params = dict(params)
        if start_key is not None:
            call_params['ExclusiveStartKey'] = start_key
        response = read(**call_params)
        pages += 1
        yield response.get('Items', [])

        start_key = response.get('LastEvaluatedKey')
        if not start_key:
            logger.debug(f"Read finished after {pages} page(s)")
            return


def collect_items(
    read: Callable[..., Dict[str, Any]],
    params: Dict[str, Any],
    transform: Optional[Callable[[Item], Item]] = None,
) -> List[Item]:
    """All items across every page, optionally transformed one by one."""
    items: List[Item] = []
    for page in iterate_pages(read, params):
        items.extend(transform(item) if transform else item for item in page)
    return items


# ============================================================================
# Timestamps
# ============================================================================

def current_timestamp() -> int:
    """Now, in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def datetime_from_timestamp(ts: int) -> datetime:
    """Convert a millisecond timestamp to a UTC datetime."""
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc)


def add_days(ts: int, days: int) -> int:
    """Calendar-naive fixed-length advance of a millisecond timestamp."""
    return ts + days * MS_PER_DAY
