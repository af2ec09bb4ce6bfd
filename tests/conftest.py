"""
Shared fixtures for the test suite.

Record factories live in factories.py; everything runs against
InMemoryStore unless a test patches DynamoDB tables explicitly.
"""

import pytest

from factories import OTHER_USER_ID, USER_ID
from utils.db.store import USERS, InMemoryStore


@pytest.fixture
def store():
    """InMemoryStore with USER_ID and OTHER_USER_ID registered."""
    s = InMemoryStore()
    for user_id in (USER_ID, OTHER_USER_ID):
        s.put(USERS, user_id, {'userId': user_id, 'email': f"{user_id}@example.com"})
    return s
