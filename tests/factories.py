"""Record factories shared by the tests."""

import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from models.detection_candidate import Cadence, DetectionCandidate, candidate_id_for
from models.money import Currency, Money
from models.raw_event import EventSource, RawEvent
from models.subscription import Subscription
from utils.db.store import CANDIDATES, SUBSCRIPTIONS

USER_ID = "user-123"
OTHER_USER_ID = "user-456"
DAY_MS = 24 * 60 * 60 * 1000
T0 = 1_700_000_000_000  # 2023-11-14T22:13:20Z


def make_event(
    raw_identifier: str,
    occurred_at: int,
    amount: str = "9.99",
    merchant_key: str = "NETFLIX",
    source: EventSource = EventSource.TRANSACTION,
    user_id: str = USER_ID,
    currency: Currency = Currency.USD,
    account_ref: str = "acct-1",
) -> RawEvent:
    return RawEvent(
        eventId=RawEvent.deterministic_id(user_id, source, raw_identifier),
        userId=user_id,
        source=source,
        subjectOrDescription=merchant_key,
        bodyOrMerchantString=merchant_key,
        senderOrAccountRef=account_ref,
        amount=Money(amount=Decimal(amount), currency=currency),
        occurredAt=occurred_at,
        rawIdentifier=raw_identifier,
        merchantKey=merchant_key,
    )


def transaction_record(
    raw_identifier: str,
    occurred_at: Any,
    amount: Any = "9.99",
    merchant: str = "NETFLIX.COM",
    currency: Optional[str] = "USD",
    account_ref: str = "acct-1",
) -> Dict[str, Any]:
    """Provider-shaped bank row."""
    return {
        'source': 'transaction',
        'subjectOrDescription': merchant,
        'bodyOrMerchantString': merchant,
        'senderOrAccountRef': account_ref,
        'amount': amount,
        'currency': currency,
        'occurredAt': occurred_at,
        'rawIdentifier': raw_identifier,
    }


def email_record(
    raw_identifier: str,
    occurred_at: Any,
    subject: str = "Your subscription has been renewed",
    body: str = "You were charged $9.99. Your plan renews on the 14th.",
    sender: str = "Netflix <info@account.netflix.com>",
    amount: Any = "9.99",
    currency: Optional[str] = "USD",
) -> Dict[str, Any]:
    """Provider-shaped email receipt."""
    return {
        'source': 'email',
        'subjectOrDescription': subject,
        'bodyOrMerchantString': body,
        'senderOrAccountRef': sender,
        'amount': amount,
        'currency': currency,
        'occurredAt': occurred_at,
        'rawIdentifier': raw_identifier,
    }


def put_candidate(store, user_id: str = USER_ID, merchant_key: str = "NETFLIX", **overrides) -> DetectionCandidate:
    """Store a pending candidate and return it."""
    fields = dict(
        candidateId=candidate_id_for(user_id, merchant_key),
        userId=user_id,
        merchantKey=merchant_key,
        proposedName="Netflix",
        proposedAmount=Decimal("9.99"),
        proposedCurrency=Currency.USD,
        proposedCadence=Cadence.MONTHLY,
        proposedNextOccurrence=T0 + 30 * DAY_MS,
        confidence=Decimal("0.9500"),
        periodicityScore=Decimal("1.0000"),
        amountStabilityScore=Decimal("1.0000"),
        supportingEventIds=["tx-1", "tx-2", "tx-3"],
        createdAt=T0,
        updatedAt=T0,
    )
    fields.update(overrides)
    candidate = DetectionCandidate(**fields)
    store.put(CANDIDATES, str(candidate.candidate_id), candidate.to_dynamodb_item())
    return candidate


def put_subscription(store, user_id: str = USER_ID, merchant_key: str = "NETFLIX", **overrides) -> Subscription:
    """Store an active subscription and return it."""
    fields = dict(
        subscriptionId=uuid.uuid4(),
        userId=user_id,
        merchantKey=merchant_key,
        name="Netflix",
        cost=Decimal("10.00"),
        currency=Currency.USD,
        cadence=Cadence.MONTHLY,
        nextOccurrence=T0,
        createdAt=T0 - 90 * DAY_MS,
        updatedAt=T0 - 90 * DAY_MS,
    )
    fields.update(overrides)
    subscription = Subscription(**fields)
    store.put(SUBSCRIPTIONS, str(subscription.subscription_id), subscription.to_dynamodb_item())
    return subscription
