"""
Events exchanged over EventBridge.

Scanners publish raw_records.received when a batch of email or bank
records arrives; the scheduler publishes renewal.sweep.requested.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
import uuid
import json

RAW_RECORDS_RECEIVED = 'raw_records.received'
RENEWAL_SWEEP_REQUESTED = 'renewal.sweep.requested'


@dataclass
class BaseEvent:
    """Envelope shared by every event; data carries the payload."""
    event_id: str
    event_type: str
    event_version: str
    timestamp: int  # epoch milliseconds
    source: str
    user_id: str
    correlation_id: Optional[str] = None
    causation_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, event_type: str, source: str, user_id: str, data: Dict[str, Any],
            correlation_id: Optional[str] = None) -> 'BaseEvent':
        """A fresh event with a random id, stamped now."""
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            event_version='1.0',
            timestamp=int(datetime.now(timezone.utc).timestamp() * 1000),
            source=source,
            user_id=user_id,
            correlation_id=correlation_id,
            data=data,
        )

    def to_eventbridge_format(self) -> Dict[str, Any]:
        """PutEvents entry; the envelope fields travel inside Detail."""
        detail = {
            'eventId': self.event_id,
            'eventVersion': self.event_version,
            'timestamp': self.timestamp,
            'userId': self.user_id,
            'correlationId': self.correlation_id,
            'causationId': self.causation_id,
            'data': self.data or {},
            'metadata': self.metadata or {},
        }
        return {'Source': self.source, 'DetailType': self.event_type, 'Detail': json.dumps(detail)}


def raw_records_received(user_id: str, records: List[Dict[str, Any]],
                         scan_id: Optional[str] = None, **extra: Any) -> BaseEvent:
    return BaseEvent.new(
        RAW_RECORDS_RECEIVED, 'ingestion.service', user_id,
        {'scanId': scan_id, 'records': records, **extra},
        correlation_id=scan_id,
    )


def renewal_sweep_requested(user_id: str = '', as_of: Optional[int] = None, **extra: Any) -> BaseEvent:
    """Sweep of past-due subscriptions; an empty user_id means every user."""
    return BaseEvent.new(RENEWAL_SWEEP_REQUESTED, 'renewal.scheduler', user_id, {'asOf': as_of, **extra})
