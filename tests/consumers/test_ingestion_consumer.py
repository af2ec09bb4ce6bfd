"""
Unit tests for the raw records ingestion consumer.
"""

import json
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest

from consumers import ingestion_consumer
from consumers.base_consumer import EventProcessingError
from consumers.ingestion_consumer import IngestionConsumer
from factories import DAY_MS, T0, USER_ID, email_record, put_subscription, transaction_record
from models.detection_candidate import CandidateStatus, candidate_id_for
from models.events import raw_records_received
from models.subscription import Subscription
from utils.db.store import CANDIDATES, PRICE_HISTORY, RAW_EVENTS, SUBSCRIPTIONS


def _eventbridge_event(records, user_id=USER_ID, event_type="raw_records.received", event_id=None):
    """Helper to create an EventBridge delivery of a raw records batch"""
    return {
        "id": str(uuid.uuid4()),
        "detail-type": event_type,
        "source": "ingestion.service",
        "detail": {
            "eventId": event_id or str(uuid.uuid4()),
            "eventVersion": "1.0",
            "timestamp": T0,
            "userId": user_id,
            "correlationId": "scan-1",
            "data": {"scanId": "scan-1", "records": records},
        },
    }


def _monthly_records(count=5, merchant="NETFLIX.COM", amount="9.99"):
    return [transaction_record(f"tx-{i}", T0 + i * 30 * DAY_MS, amount, merchant) for i in range(count)]


@pytest.fixture
def consumer(store):
    return IngestionConsumer(store)


# ==============================================================================
# Test Event Processing
# ==============================================================================


def test_batch_creates_candidate(consumer, store):
    """A steady monthly history becomes a pending candidate"""
    result = consumer.handle_eventbridge_event(_eventbridge_event(_monthly_records()), None)

    assert result["statusCode"] == 200
    assert result["processed_count"] == 1
    assert result["failed_count"] == 0
    assert store.count(RAW_EVENTS) == 5

    stored = store.get(CANDIDATES, str(candidate_id_for(USER_ID, "NETFLIX")))
    assert stored["status"] == CandidateStatus.PENDING.value
    assert stored["proposedCadence"] == "monthly"


def test_emails_and_transactions_in_one_batch(consumer, store):
    """Both feeds are ingested; the candidate is scored from one source"""
    records = _monthly_records(3) + [
        email_record(f"m-{i}", T0 + i * 30 * DAY_MS + DAY_MS // 4) for i in range(3)
    ]

    consumer.handle_eventbridge_event(_eventbridge_event(records), None)

    stored = store.get(CANDIDATES, str(candidate_id_for(USER_ID, "NETFLIX")))
    assert stored["supportingEventIds"] == ["tx-0", "tx-1", "tx-2"]
    assert store.count(RAW_EVENTS) == 6


def test_redelivered_batch_is_idempotent(store):
    """A second delivery of the same records changes nothing"""
    records = _monthly_records()
    IngestionConsumer(store).handle_eventbridge_event(_eventbridge_event(records), None)
    before = store.get(CANDIDATES, str(candidate_id_for(USER_ID, "NETFLIX")))

    result = IngestionConsumer(store).handle_eventbridge_event(_eventbridge_event(records), None)

    assert result["processed_count"] == 1
    assert store.count(RAW_EVENTS) == 5
    assert store.get(CANDIDATES, str(candidate_id_for(USER_ID, "NETFLIX"))) == before


def test_observed_price_change_updates_subscription(consumer, store):
    """A bank charge at a new price moves the tracked subscription's cost"""
    subscription = put_subscription(store, cost=Decimal("9.99"))
    records = [transaction_record("tx-new", T0 + DAY_MS, "12.99")]

    consumer.handle_eventbridge_event(_eventbridge_event(records), None)

    stored = Subscription.from_dynamodb_item(store.get(SUBSCRIPTIONS, str(subscription.subscription_id)))
    assert stored.cost == Decimal("12.99")
    assert store.count(PRICE_HISTORY) == 1
    assert store.count(CANDIDATES) == 0


def test_malformed_records_do_not_fail_batch(consumer, store):
    """Unparseable records are dropped and the rest is stored"""
    records = [transaction_record("tx-ok", T0), transaction_record("tx-bad", "yesterday-ish")]

    result = consumer.handle_eventbridge_event(_eventbridge_event(records), None)

    assert result["processed_count"] == 1
    assert store.count(RAW_EVENTS) == 1


def test_empty_batch(consumer, store):
    result = consumer.handle_eventbridge_event(_eventbridge_event([]), None)
    assert result["processed_count"] == 1
    assert store.count(RAW_EVENTS) == 0


def test_other_event_types_are_skipped(consumer):
    result = consumer.handle_eventbridge_event(
        _eventbridge_event(_monthly_records(), event_type="renewal.sweep.requested"), None
    )
    assert result["skipped_count"] == 1
    assert result["processed_count"] == 0


def test_duplicate_event_is_skipped(consumer):
    event = _eventbridge_event(_monthly_records(), event_id="evt-1")
    consumer.handle_eventbridge_event(event, None)

    result = consumer.handle_eventbridge_event(event, None)

    assert result["skipped_count"] == 1


def test_sqs_wrapped_delivery(consumer, store):
    """EventBridge events arriving through an SQS queue are unwrapped"""
    event = {"Records": [{"body": json.dumps(_eventbridge_event(_monthly_records(2)))}]}

    result = consumer.handle_eventbridge_event(event, None)

    assert result["processed_count"] == 1
    assert store.count(RAW_EVENTS) == 2


def test_published_event_round_trip(consumer, store):
    """A raw_records.received event as published reaches the pipeline intact"""
    entry = raw_records_received(USER_ID, _monthly_records(3), scan_id="scan-9").to_eventbridge_format()
    delivered = {
        "id": str(uuid.uuid4()),
        "detail-type": entry["DetailType"],
        "source": entry["Source"],
        "detail": entry["Detail"],
    }

    result = consumer.handle_eventbridge_event(delivered, None)

    assert result["processed_count"] == 1
    assert store.count(RAW_EVENTS) == 3
    assert store.get(CANDIDATES, str(candidate_id_for(USER_ID, "NETFLIX"))) is not None


# ==============================================================================
# Test Error Handling
# ==============================================================================


def test_unknown_user_is_permanent(consumer):
    with pytest.raises(EventProcessingError) as exc_info:
        consumer.handle_eventbridge_event(_eventbridge_event(_monthly_records(), user_id="nobody"), None)
    assert exc_info.value.permanent


def test_missing_records_is_permanent(consumer):
    event = _eventbridge_event([])
    event["detail"]["data"] = {"scanId": "scan-1"}

    with pytest.raises(EventProcessingError) as exc_info:
        consumer.handle_eventbridge_event(event, None)
    assert "records" in str(exc_info.value)


def test_missing_user_is_permanent(consumer):
    with pytest.raises(EventProcessingError):
        consumer.handle_eventbridge_event(_eventbridge_event(_monthly_records(), user_id=""), None)


def test_transient_error_is_counted(consumer):
    """Store outages are reported as failures so the batch can be retried"""
    with patch.object(consumer.pipeline, "ingest_batch", side_effect=ConnectionError("table unavailable")):
        result = consumer.handle_eventbridge_event(_eventbridge_event(_monthly_records()), None)

    assert result["failed_count"] == 1
    assert result["errors"][0]["permanent"] is False


# ==============================================================================
# Test Lambda Handler
# ==============================================================================


def test_handler_uses_dynamodb_store(store):
    with patch("consumers.ingestion_consumer.DynamoDBStore", return_value=store):
        result = ingestion_consumer.handler(_eventbridge_event(_monthly_records()), None)

    assert result["statusCode"] == 200
    assert store.count(RAW_EVENTS) == 5


def test_handler_reports_failure(store):
    with patch("consumers.ingestion_consumer.DynamoDBStore", return_value=store):
        result = ingestion_consumer.handler(_eventbridge_event(_monthly_records(), user_id="nobody"), None)

    assert result["statusCode"] == 500
    assert json.loads(result["body"])["error"] == "Raw records ingestion consumer failed"
