"""
Raw Records Ingestion Consumer Lambda.

Consumes batches of provider records published by the email and bank
scanners, runs them through the ingestion pipeline and rescores every
merchant that received a new event.

Event Types Processed:
- raw_records.received: a scan delivered zero or more raw records
"""

import json
import logging
import traceback
from typing import Any, Dict, Optional

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

from consumers.base_consumer import BaseEventConsumer, EventProcessingError
from models.events import RAW_RECORDS_RECEIVED, BaseEvent
from models.raw_event import EventSource
from services.ingestion import IngestionPipeline
from services.recurring_charges.detection_service import RecurringChargeDetectionService
from services.renewals import detect_observed_price_change
from utils.db import DynamoDBStore, NotFound, RecordStore


class IngestionConsumer(BaseEventConsumer):
    """Consumer for raw record batches"""

    INGESTION_EVENT_TYPES = {RAW_RECORDS_RECEIVED}

    def __init__(self, store: Optional[RecordStore] = None):
        super().__init__("raw_records_ingestion_consumer")
        self.store = store or DynamoDBStore()
        self.pipeline = IngestionPipeline(self.store)
        self.detection_service = RecurringChargeDetectionService(self.store, resolver=self.pipeline.resolver)

    def should_process_event(self, event: BaseEvent) -> bool:
        return event.event_type in self.INGESTION_EVENT_TYPES

    def process_event(self, event: BaseEvent) -> None:
        """
        Ingest the batch, then:
        1. check new bank charges against tracked subscription prices
        2. rescore merchants with new events and refresh their candidates
        """
        self.validate_event(event)
        records = (event.data or {}).get('records')
        if not isinstance(records, list):
            raise EventProcessingError("Event data has no records list", event_id=event.event_id, permanent=True)

        logger.info(f"Ingesting {len(records)} records for user {event.user_id} (scan {event.correlation_id})")

        try:
            report = self.pipeline.ingest_batch(event.user_id, records)
        except NotFound as e:
            raise EventProcessingError(str(e), event_id=event.event_id, permanent=True)

        price_changes = 0
        for raw_event in report.stored_events:
            if raw_event.source != EventSource.TRANSACTION:
                continue
            if detect_observed_price_change(self.store, raw_event, self.detection_service.config):
                price_changes += 1

        candidates = self.detection_service.detect_for_merchants(event.user_id, report.affected_merchants)

        logger.info(
            f"Ingestion complete for user {event.user_id}: {report.summary()}, "
            f"{price_changes} price changes, {len(candidates)} candidates refreshed"
        )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for raw record batches from EventBridge.

    Expected event format from EventBridge:
    {
        "detail-type": "raw_records.received",
        "source": "ingestion.service",
        "detail": {
            "eventId": "...",
            "userId": "...",
            "data": {
                "scanId": "...",
                "records": [{"source": "email", "rawIdentifier": "...", ...}]
            }
        }
    }
    """
    try:
        consumer = IngestionConsumer()
        result = consumer.handle_eventbridge_event(event, context)
        logger.info("Raw records ingestion consumer completed successfully")
        return result

    except Exception as e:
        logger.error(f"Raw records ingestion consumer failed: {str(e)}")
        logger.error(f"Stacktrace: {traceback.format_exc()}")
        return {
            "statusCode": 500,
            "body": json.dumps({
                "error": "Raw records ingestion consumer failed",
                "message": str(e),
            }),
        }
