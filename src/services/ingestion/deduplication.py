"""
Deduplication store.

Two independent concerns:
- ingestion idempotency, keyed by the provider raw identifier;
- duplicate-charge fingerprinting, flagging the same transaction billed
  twice (same account, amount, day and merchant, different raw ids).
"""

import hashlib
import logging
from enum import Enum
from typing import List, Optional

from models.raw_event import DuplicateChargeAlert, EventSource, RawEvent
from utils.db.helpers import datetime_from_timestamp
from utils.db.store import (
    DUPLICATE_CHARGES,
    RAW_EVENTS,
    RecordStore,
    atomic_update_with_reload,
)

logger = logging.getLogger(__name__)


class IngestionOutcome(str, Enum):
    STORED = "stored"
    SKIPPED = "skipped"
    FILTERED = "filtered"
    MALFORMED = "malformed"


def charge_fingerprint(event: RawEvent) -> str:
    """
    Stable fingerprint of (account, amount, day, merchant).

    sha256 over a canonical string, so it survives restarts and does not
    depend on the order events are seen in.
    """
    money = event.amount.quantized()
    day = datetime_from_timestamp(event.occurred_at).strftime('%Y-%m-%d')
    canonical = "|".join([
        event.sender_or_account_ref.strip().upper(),
        f"{money.amount}{money.currency.value}",
        day,
        event.merchant_key,
    ])
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


class DeduplicationStore:
    """Idempotent raw-event storage plus duplicate-charge tracking."""

    def __init__(self, store: RecordStore):
        self.store = store

    def record(self, event: RawEvent) -> IngestionOutcome:
        """Store event unless its raw identifier was already ingested."""
        written = self.store.put(RAW_EVENTS, event.store_key, event.to_dynamodb_item(), if_absent=True)
        if not written:
            logger.info(f"Raw event {event.store_key} already ingested, skipping")
            return IngestionOutcome.SKIPPED
        return IngestionOutcome.STORED

    def flag_duplicate_charge(self, event: RawEvent) -> Optional[DuplicateChargeAlert]:
        """
        Track event under its charge fingerprint.

        Returns the alert once two or more distinct raw ids share the
        fingerprint, None otherwise. Emails have no account and are ignored.
        """
        if event.source != EventSource.TRANSACTION:
            return None

        fingerprint = charge_fingerprint(event)
        money = event.amount.quantized()

        def merge(current):
            if current is None:
                current = DuplicateChargeAlert(
                    fingerprint=fingerprint,
                    userId=event.user_id,
                    accountRef=event.sender_or_account_ref,
                    amount=money.amount,
                    currency=money.currency,
                    occurredOn=datetime_from_timestamp(event.occurred_at).strftime('%Y-%m-%d'),
                    merchantKey=event.merchant_key,
                ).to_dynamodb_item()
            raw_ids = set(current.get('rawEventIds', []))
            if event.raw_identifier in raw_ids:
                return None
            raw_ids.add(event.raw_identifier)
            current['rawEventIds'] = sorted(raw_ids)
            return current

        stored = atomic_update_with_reload(self.store, DUPLICATE_CHARGES, f"{event.user_id}#{fingerprint}", merge)
        alert = DuplicateChargeAlert.from_dynamodb_item(stored)
        if not alert.is_duplicate:
            return None

        logger.warning(
            f"Possible duplicate charge for user {event.user_id}: {alert.merchant_key} "
            f"{alert.amount} {alert.currency.value} on {alert.occurred_on} ({len(alert.raw_event_ids)} charges)"
        )
        return alert

    def list_duplicate_charges(self, user_id: str) -> List[DuplicateChargeAlert]:
        alerts = [
            DuplicateChargeAlert.from_dynamodb_item(item)
            for item in self.store.query(DUPLICATE_CHARGES, userId=user_id)
        ]
        duplicates = [alert for alert in alerts if alert.is_duplicate]
        duplicates.sort(key=lambda a: (a.occurred_on, a.fingerprint), reverse=True)
        return duplicates
