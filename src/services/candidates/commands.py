"""
User decisions on detection candidates.

AcceptCandidate and DismissCandidate are command objects over a RecordStore.
The status change is one atomic read-modify-write on the candidate key, so
two concurrent accepts settle the candidate exactly once. Follow-up writes
(subscription, audit entry) are keyed deterministically from the candidate
and written only-if-absent, so re-running a command repairs a partial run
instead of duplicating it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from models.audit_log import AuditLogEntry, SUBSCRIPTION_DETECTED_ACCEPTED
from models.detection_candidate import (
    CandidateOverrides,
    CandidateStatus,
    DetectionCandidate,
    subscription_id_for,
)
from models.subscription import Subscription
from services.errors import InvalidTransition
from utils.db.helpers import current_timestamp
from utils.db.records import checked_mandatory_candidate
from utils.db.store import (
    AUDIT_LOGS,
    CANDIDATES,
    SUBSCRIPTIONS,
    RecordStore,
    atomic_update_with_reload,
)

logger = logging.getLogger(__name__)


@dataclass
class AcceptResult:
    candidate: DetectionCandidate
    subscription: Subscription
    created: bool


def build_subscription(candidate: DetectionCandidate, overrides: Optional[CandidateOverrides], now: int) -> Subscription:
    """Subscription from the candidate's proposal with user overrides applied."""
    overrides = overrides or CandidateOverrides()
    return Subscription(
        subscriptionId=candidate.resulting_subscription_id,
        userId=candidate.user_id,
        merchantKey=candidate.merchant_key,
        name=overrides.name or candidate.proposed_name,
        cost=overrides.amount if overrides.amount is not None else candidate.proposed_amount,
        currency=candidate.proposed_currency,
        cadence=overrides.cadence or candidate.proposed_cadence,
        nextOccurrence=(
            overrides.next_occurrence
            if overrides.next_occurrence is not None
            else candidate.proposed_next_occurrence
        ),
        originatingCandidateId=candidate.candidate_id,
        createdAt=now,
        updatedAt=now,
    )


class AcceptCandidate:
    """
    Accept a pending candidate and materialize its subscription.

    Accepting an already-accepted candidate is a no-op that returns the
    existing subscription (creating it if an earlier run stopped short).
    Accepting a dismissed candidate raises InvalidTransition.
    """

    def __init__(
        self,
        store: RecordStore,
        candidate_id: Union[str, uuid.UUID],
        user_id: str,
        overrides: Optional[CandidateOverrides] = None,
        now: Optional[int] = None,
    ):
        self.store = store
        self.candidate_id = str(candidate_id)
        self.user_id = user_id
        self.overrides = overrides
        self.now = now

    def _transition(self, current):
        if current is None:
            return None
        candidate = DetectionCandidate.from_dynamodb_item(current)
        if candidate.status == CandidateStatus.DISMISSED:
            raise InvalidTransition(f"Candidate {candidate.candidate_id} was dismissed and cannot be accepted")
        if candidate.status == CandidateStatus.ACCEPTED:
            return None

        accepted = candidate.model_copy(update={
            'status': CandidateStatus.ACCEPTED,
            'resulting_subscription_id': subscription_id_for(candidate.candidate_id),
            'reviewed_at': self.now,
            'acceptance_overrides': self.overrides,
            'updated_at': self.now,
        })
        accepted = DetectionCandidate.model_validate(accepted.model_dump())
        # A proposal that cannot become a subscription must not be committed as accepted
        build_subscription(accepted, self.overrides, self.now)
        return accepted.to_dynamodb_item()

    def execute(self) -> AcceptResult:
        self.now = self.now if self.now is not None else current_timestamp()
        checked_mandatory_candidate(self.store, self.candidate_id, self.user_id)

        stored = atomic_update_with_reload(self.store, CANDIDATES, self.candidate_id, self._transition)
        candidate = DetectionCandidate.from_dynamodb_item(stored)

        # First accept's overrides win on repeats
        subscription = build_subscription(candidate, candidate.acceptance_overrides, self.now)
        subscription_key = str(subscription.subscription_id)
        created = self.store.put(SUBSCRIPTIONS, subscription_key, subscription.to_dynamodb_item(), if_absent=True)
        if not created:
            subscription = Subscription.from_dynamodb_item(self.store.get(SUBSCRIPTIONS, subscription_key))

        audit = AuditLogEntry(
            entryId=f"accept#{candidate.candidate_id}",
            userId=candidate.user_id,
            action=SUBSCRIPTION_DETECTED_ACCEPTED,
            resourceType="subscription",
            resourceId=subscription_key,
            metadata={
                'candidateId': str(candidate.candidate_id),
                'confidence': str(candidate.confidence),
                'merchantName': candidate.proposed_name,
            },
            createdAt=self.now,
        )
        self.store.put(AUDIT_LOGS, audit.entry_id, audit.to_dynamodb_item(), if_absent=True)

        if created:
            logger.info(
                f"Accepted candidate {candidate.candidate_id} for user {self.user_id}, "
                f"created subscription {subscription_key}"
            )
        else:
            logger.info(f"Candidate {candidate.candidate_id} already accepted, subscription {subscription_key} exists")
        return AcceptResult(candidate=candidate, subscription=subscription, created=created)


class DismissCandidate:
    """Dismiss a pending candidate. Dismissing twice is a no-op; dismissing an accepted one is rejected."""

    def __init__(
        self,
        store: RecordStore,
        candidate_id: Union[str, uuid.UUID],
        user_id: str,
        now: Optional[int] = None,
    ):
        self.store = store
        self.candidate_id = str(candidate_id)
        self.user_id = user_id
        self.now = now

    def _transition(self, current):
        if current is None:
            return None
        candidate = DetectionCandidate.from_dynamodb_item(current)
        if candidate.status == CandidateStatus.ACCEPTED:
            raise InvalidTransition(f"Candidate {candidate.candidate_id} was accepted and cannot be dismissed")
        if candidate.status == CandidateStatus.DISMISSED:
            return None
        dismissed = candidate.model_copy(update={
            'status': CandidateStatus.DISMISSED,
            'reviewed_at': self.now,
            'updated_at': self.now,
        })
        return dismissed.to_dynamodb_item()

    def execute(self) -> DetectionCandidate:
        self.now = self.now if self.now is not None else current_timestamp()
        checked_mandatory_candidate(self.store, self.candidate_id, self.user_id)
        stored = atomic_update_with_reload(self.store, CANDIDATES, self.candidate_id, self._transition)
        candidate = DetectionCandidate.from_dynamodb_item(stored)
        logger.info(f"Candidate {candidate.candidate_id} dismissed by user {self.user_id}")
        return candidate
