"""
Unit tests for the renewal sweep consumer.
"""

import json
import uuid
from unittest.mock import patch

import pytest

from consumers import renewal_sweep_consumer
from consumers.base_consumer import EventProcessingError
from consumers.renewal_sweep_consumer import RenewalSweepConsumer
from factories import DAY_MS, T0, put_subscription
from models.events import renewal_sweep_requested
from models.subscription import RenewalStatus
from utils.db.store import SUBSCRIPTIONS


def _scheduled_event():
    """Helper to create an EventBridge schedule delivery"""
    return {
        "id": str(uuid.uuid4()),
        "detail-type": "Scheduled Event",
        "source": "aws.events",
        "detail": {},
    }


def _sweep_requested_event(as_of):
    """Helper to deliver a published sweep request the way EventBridge does"""
    entry = renewal_sweep_requested(as_of=as_of).to_eventbridge_format()
    return {
        "id": str(uuid.uuid4()),
        "detail-type": entry["DetailType"],
        "source": entry["Source"],
        "detail": entry["Detail"],
    }


@pytest.fixture
def consumer(store):
    return RenewalSweepConsumer(store)


def test_scheduled_event_flags_overdue_subscriptions(consumer, store):
    subscription = put_subscription(store, nextOccurrence=T0)

    result = consumer.handle_eventbridge_event(_scheduled_event(), None)

    assert result["processed_count"] == 1
    assert consumer.last_flagged == [str(subscription.subscription_id)]
    assert store.get(SUBSCRIPTIONS, str(subscription.subscription_id))["renewalStatus"] == "pending_confirmation"


def test_requested_sweep_uses_as_of(consumer, store):
    due = put_subscription(store, nextOccurrence=T0)
    later = put_subscription(store, merchant_key="HULU", nextOccurrence=T0 + 10 * DAY_MS)

    consumer.handle_eventbridge_event(_sweep_requested_event(T0 + DAY_MS), None)

    assert consumer.last_flagged == [str(due.subscription_id)]
    assert store.get(SUBSCRIPTIONS, str(later.subscription_id))["renewalStatus"] == RenewalStatus.UNSET.value


def test_as_of_accepts_digit_strings(consumer, store):
    put_subscription(store, nextOccurrence=T0)
    consumer.handle_eventbridge_event(_sweep_requested_event(str(T0 - DAY_MS)), None)
    assert consumer.last_flagged == []


def test_invalid_as_of_is_permanent(consumer):
    with pytest.raises(EventProcessingError) as exc_info:
        consumer.handle_eventbridge_event(_sweep_requested_event("tomorrow"), None)
    assert exc_info.value.permanent


def test_other_event_types_are_skipped(consumer):
    event = _scheduled_event()
    event["detail-type"] = "raw_records.received"

    result = consumer.handle_eventbridge_event(event, None)

    assert result["skipped_count"] == 1


def test_handler_reports_flagged_count(store):
    put_subscription(store, nextOccurrence=T0)
    put_subscription(store, merchant_key="HULU", nextOccurrence=T0 - DAY_MS)

    with patch("consumers.renewal_sweep_consumer.DynamoDBStore", return_value=store):
        result = renewal_sweep_consumer.handler(_scheduled_event(), None)

    assert result["statusCode"] == 200
    assert result["flaggedCount"] == 2


def test_handler_reports_failure(store):
    with patch("consumers.renewal_sweep_consumer.DynamoDBStore", return_value=store):
        result = renewal_sweep_consumer.handler(_sweep_requested_event("tomorrow"), None)

    assert result["statusCode"] == 500
    assert "asOf" in json.loads(result["body"])["message"]
