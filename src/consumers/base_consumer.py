"""
Base consumer framework for the event-driven entry points.

Unwraps EventBridge deliveries (direct or through SQS) into BaseEvents,
classifies per-record failures as permanent or transient and reports the
batch statistics the Lambda returns.
"""
import json
import logging
import traceback
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from datetime import datetime

from pydantic import ValidationError

from models.events import BaseEvent

logger = logging.getLogger(__name__)

MAX_REMEMBERED_EVENTS = 1000

# Bad input never succeeds on retry; store and network errors might
PERMANENT_ERROR_TYPES = (ValueError, TypeError, KeyError, AttributeError, ValidationError)


class EventProcessingError(Exception):
    """Raised by consumers; permanent errors are re-raised for DLQ routing"""
    def __init__(self, message: str, event_id: Optional[str] = None, permanent: bool = False):
        super().__init__(message)
        self.event_id = event_id
        self.permanent = permanent


@dataclass
class BatchStats:
    consumer: str
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def record_failure(self, event_id: str, error: Exception, permanent: bool) -> None:
        self.failed_count += 1
        self.errors.append({'event_id': event_id, 'error': str(error), 'permanent': permanent})

    @property
    def total(self) -> int:
        return self.processed_count + self.failed_count + self.skipped_count

    def as_dict(self) -> Dict[str, Any]:
        return {
            'consumer': self.consumer,
            'processed_count': self.processed_count,
            'failed_count': self.failed_count,
            'skipped_count': self.skipped_count,
            'errors': self.errors,
        }


def _event_from_payload(payload: Dict[str, Any], **envelope: Any) -> BaseEvent:
    """Build a BaseEvent from a detail or SQS body; envelope values win."""
    fields = {
        'event_id': payload.get('eventId', ''),
        'event_type': payload.get('eventType', ''),
        'event_version': payload.get('eventVersion', '1.0'),
        'timestamp': payload.get('timestamp', 0),
        'source': payload.get('source', ''),
        'user_id': payload.get('userId', ''),
        'correlation_id': payload.get('correlationId'),
        'causation_id': payload.get('causationId'),
        'data': payload.get('data', {}),
        'metadata': payload.get('metadata', {}),
    }
    fields.update(envelope)
    return BaseEvent(**fields)


class BaseEventConsumer(ABC):
    """
    Base class for all event consumers.

    Subclasses decide which events they take (should_process_event) and
    what to do with them (process_event). A record that fails transiently
    is counted and the batch continues; a permanent failure is re-raised.
    """

    def __init__(self, consumer_name: str):
        self.consumer_name = consumer_name
        self._seen_event_ids: "OrderedDict[str, None]" = OrderedDict()
        self._lambda_context: Optional[Any] = None
        logger.info(f"Initializing {consumer_name} consumer")

    def handle_eventbridge_event(self, event: Any, context: Any) -> Dict[str, Any]:
        """Entry point called from the Lambda handler."""
        self._lambda_context = context
        started = datetime.now()
        stats = BatchStats(consumer=self.consumer_name)

        records = self._extract_records(event)
        if not records:
            logger.warning("No records found in event payload")
            return self._create_response(stats, started)

        logger.info(f"{self.consumer_name} processing {len(records)} records")
        for record in records:
            self._handle_record(record, stats)

        logger.info(
            f"{self.consumer_name} processing complete: {stats.processed_count}/{stats.total} processed, "
            f"{stats.failed_count} failed, {stats.skipped_count} skipped"
        )
        return self._create_response(stats, started)

    def _handle_record(self, record: Dict[str, Any], stats: BatchStats) -> None:
        parsed: Optional[BaseEvent] = None
        try:
            parsed = self._parse_event_record(record)
            if not self.should_process_event(parsed):
                logger.debug(f"Skipping event {parsed.event_id} of type {parsed.event_type}")
                stats.skipped_count += 1
                return
            if self._is_duplicate_event(parsed):
                logger.info(f"Skipping duplicate event {parsed.event_id}")
                stats.skipped_count += 1
                return

            self.process_event(parsed)
            self._mark_event_processed(parsed)
            stats.processed_count += 1

        except EventProcessingError as e:
            logger.error(f"EventProcessingError: {str(e)}")
            stats.record_failure(e.event_id or (parsed.event_id if parsed else 'unknown'), e, e.permanent)
            if e.permanent:
                raise

        except Exception as e:
            logger.error(f"Unexpected error processing record: {str(e)}")
            logger.error(traceback.format_exc())
            permanent = self.is_permanent_failure(e)
            stats.record_failure(parsed.event_id if parsed else 'unknown', e, permanent)
            if permanent:
                raise

    def _extract_records(self, event: Any) -> List[Dict[str, Any]]:
        """A list, an SQS batch, or a single EventBridge delivery."""
        if isinstance(event, list):
            return event
        if 'Records' in event and not ('source' in event and 'detail-type' in event):
            return event['Records']
        return [event]

    def _parse_event_record(self, record: Dict[str, Any]) -> BaseEvent:
        """Parse an EventBridge record (direct or SQS-wrapped) into a BaseEvent"""
        try:
            if 'detail' in record and 'source' in record:
                detail = record['detail']
                if isinstance(detail, str):
                    detail = json.loads(detail)
                # Scheduled rules carry an empty detail; fall back to the envelope id
                return _event_from_payload(
                    detail,
                    event_id=detail.get('eventId') or record.get('id', ''),
                    event_type=record.get('detail-type', ''),
                    source=record.get('source', ''),
                )

            if 'body' in record:
                body = json.loads(record['body'])
                if 'detail' in body and 'source' in body:
                    return self._parse_event_record(body)
                return _event_from_payload(body)

        except json.JSONDecodeError as e:
            raise EventProcessingError(f"Failed to parse JSON in event record: {str(e)}", permanent=True)
        except (AttributeError, TypeError) as e:
            raise EventProcessingError(f"Failed to parse event record: {str(e)}", permanent=True)

        raise EventProcessingError(f"Unknown event record format: {list(record.keys())}", permanent=True)

    def _is_duplicate_event(self, event: BaseEvent) -> bool:
        return bool(event.event_id) and event.event_id in self._seen_event_ids

    def _mark_event_processed(self, event: BaseEvent) -> None:
        if not event.event_id:
            return
        self._seen_event_ids[event.event_id] = None
        while len(self._seen_event_ids) > MAX_REMEMBERED_EVENTS:
            self._seen_event_ids.popitem(last=False)

    def _create_response(self, stats: BatchStats, started: datetime, status_code: int = 200) -> Dict[str, Any]:
        response = {
            'statusCode': status_code,
            'processingTimeMs': round((datetime.now() - started).total_seconds() * 1000, 2),
            'timestamp': int(datetime.now().timestamp() * 1000),
            **stats.as_dict(),
        }
        if self._lambda_context is not None:
            response['requestId'] = getattr(self._lambda_context, 'aws_request_id', None)
        return response

    @abstractmethod
    def should_process_event(self, event: BaseEvent) -> bool:
        pass

    @abstractmethod
    def process_event(self, event: BaseEvent) -> None:
        """
        Process one event.

        Raises:
            EventProcessingError: For failures the consumer classified itself
            Exception: For anything else, classified by is_permanent_failure
        """
        pass

    def is_permanent_failure(self, error: Exception) -> bool:
        return isinstance(error, PERMANENT_ERROR_TYPES)

    def validate_event(self, event: BaseEvent, require_user: bool = True) -> None:
        """
        Raises:
            EventProcessingError: If the envelope is missing required fields
        """
        if not event.event_id:
            raise EventProcessingError("Event ID is required", permanent=True)
        if not event.event_type:
            raise EventProcessingError("Event type is required", event_id=event.event_id, permanent=True)
        if require_user and not event.user_id:
            raise EventProcessingError("User ID is required", event_id=event.event_id, permanent=True)
