"""
Renewal Sweep Consumer Lambda.

Runs the renewal sweep on a schedule or on request, flagging active
subscriptions whose next occurrence has passed for user confirmation.

Event Types Processed:
- renewal.sweep.requested: explicit sweep, optional data.asOf (ms)
- Scheduled Event: EventBridge schedule rule
"""

import json
import logging
import traceback
from typing import Any, Dict, Optional

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

from consumers.base_consumer import BaseEventConsumer, EventProcessingError
from models.events import RENEWAL_SWEEP_REQUESTED, BaseEvent
from services.renewals import RenewalSweep
from utils.db import DynamoDBStore, RecordStore, current_timestamp


class RenewalSweepConsumer(BaseEventConsumer):
    """Consumer for renewal sweep triggers"""

    SWEEP_EVENT_TYPES = {
        RENEWAL_SWEEP_REQUESTED,
        "Scheduled Event",
    }

    def __init__(self, store: Optional[RecordStore] = None):
        super().__init__("renewal_sweep_consumer")
        self.store = store or DynamoDBStore()
        self.sweep = RenewalSweep(self.store)
        self.last_flagged = []

    def should_process_event(self, event: BaseEvent) -> bool:
        return event.event_type in self.SWEEP_EVENT_TYPES

    def process_event(self, event: BaseEvent) -> None:
        as_of = (event.data or {}).get('asOf')
        if as_of is not None:
            try:
                as_of = int(as_of)
            except (TypeError, ValueError):
                raise EventProcessingError(f"asOf must be epoch milliseconds, got {as_of!r}",
                                           event_id=event.event_id, permanent=True)
        now = as_of if as_of is not None else current_timestamp()

        logger.info(f"Running renewal sweep for event {event.event_id} as of {now}")
        self.last_flagged = self.sweep.run(now)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for renewal sweep triggers.

    Expected event format from an EventBridge schedule:
    {
        "id": "...",
        "detail-type": "Scheduled Event",
        "source": "aws.events",
        "detail": {}
    }
    """
    try:
        consumer = RenewalSweepConsumer()
        result = consumer.handle_eventbridge_event(event, context)
        result['flaggedCount'] = len(consumer.last_flagged)
        logger.info(f"Renewal sweep consumer completed, {len(consumer.last_flagged)} subscriptions flagged")
        return result

    except Exception as e:
        logger.error(f"Renewal sweep consumer failed: {str(e)}")
        logger.error(f"Stacktrace: {traceback.format_exc()}")
        return {
            "statusCode": 500,
            "body": json.dumps({
                "error": "Renewal sweep consumer failed",
                "message": str(e),
            }),
        }
