"""
Typed record access on top of a RecordStore.

Provides the checked_mandatory_* lookups used by services and handlers:
they load a record, raise the domain not-found error when it is missing
and enforce that it belongs to the acting user.
"""

import logging
import uuid
from typing import List, Optional, Union

from models.detection_candidate import DetectionCandidate, CandidateStatus
from models.subscription import Subscription
from .base import (
    UnknownUser,
    UnknownCandidate,
    UnknownSubscription,
    check_user_owns_resource,
)
from .store import RecordStore, USERS, CANDIDATES, SUBSCRIPTIONS

logger = logging.getLogger(__name__)


def checked_mandatory_user(store: RecordStore, user_id: str) -> None:
    """
    Raises:
        UnknownUser: If the user is not registered
    """
    if not user_id or store.get(USERS, user_id) is None:
        raise UnknownUser(f"User {user_id} not found")


def checked_mandatory_candidate(
    store: RecordStore,
    candidate_id: Union[str, uuid.UUID],
    user_id: str
) -> DetectionCandidate:
    """
    Load a candidate the user owns.

    Raises:
        UnknownCandidate: If candidate doesn't exist
        Unauthorized: If user doesn't own the candidate
    """
    if not candidate_id:
        raise UnknownCandidate("Candidate ID is required")

    item = store.get(CANDIDATES, str(candidate_id))
    if not item:
        raise UnknownCandidate(f"Detection candidate {candidate_id} not found")

    candidate = DetectionCandidate.from_dynamodb_item(item)
    check_user_owns_resource(candidate.user_id, user_id)
    return candidate


def checked_mandatory_subscription(
    store: RecordStore,
    subscription_id: Union[str, uuid.UUID],
    user_id: str
) -> Subscription:
    """
    Load a subscription the user owns.

    Raises:
        UnknownSubscription: If subscription doesn't exist
        Unauthorized: If user doesn't own the subscription
    """
    if not subscription_id:
        raise UnknownSubscription("Subscription ID is required")

    item = store.get(SUBSCRIPTIONS, str(subscription_id))
    if not item:
        raise UnknownSubscription(f"Subscription {subscription_id} not found")

    subscription = Subscription.from_dynamodb_item(item)
    check_user_owns_resource(subscription.user_id, user_id)
    return subscription


def list_candidates(
    store: RecordStore,
    user_id: str,
    status: Optional[CandidateStatus] = None
) -> List[DetectionCandidate]:
    """Candidates for a user, newest first, optionally filtered by status."""
    filters = {'userId': user_id}
    if status is not None:
        filters['status'] = status.value
    candidates = [DetectionCandidate.from_dynamodb_item(item) for item in store.query(CANDIDATES, **filters)]
    candidates.sort(key=lambda c: (c.created_at, str(c.candidate_id)), reverse=True)
    logger.info(f"DB: Found {len(candidates)} candidates for user {user_id}")
    return candidates


def list_subscriptions(store: RecordStore, user_id: Optional[str] = None, **filters) -> List[Subscription]:
    if user_id is not None:
        filters['userId'] = user_id
    return [Subscription.from_dynamodb_item(item) for item in store.query(SUBSCRIPTIONS, **filters)]


def find_subscription_for_merchant(store: RecordStore, user_id: str, merchant_key: str) -> Optional[Subscription]:
    """Active subscription tracking a merchant, if any."""
    matches = list_subscriptions(store, user_id, merchantKey=merchant_key, isActive=True)
    if not matches:
        return None
    return min(matches, key=lambda s: s.created_at)
