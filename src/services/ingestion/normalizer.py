"""
Record normalizer.

Maps one provider-native record (email or bank transaction row) onto a
RawEvent. Pure mapping: no store access, no guessing. Records whose amount
or date cannot be parsed are rejected with MalformedRecord.
"""

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import ValidationError

from models.money import Money
from models.raw_event import EventSource, RawEvent
from services.errors import MalformedRecord
from services.ingestion.merchant_resolver import MerchantResolver, merchant_text_from_sender

logger = logging.getLogger(__name__)

_EPOCH_MS_THRESHOLD = 10 ** 11  # below this a numeric timestamp is in seconds
_DIGITS = re.compile(r"^\d+$")


def parse_occurred_at(value: Any) -> int:
    """
    Parse a provider date into epoch milliseconds.

    Accepts epoch seconds or milliseconds (numbers or digit strings) and ISO
    8601 dates or datetimes. Naive values are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("occurredAt is missing")

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("occurredAt is empty")
        if _DIGITS.match(text):
            value = int(text)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    if isinstance(value, (int, Decimal, float)):
        number = int(value)
        if number < 0:
            raise ValueError(f"occurredAt is negative: {value}")
        return number if number >= _EPOCH_MS_THRESHOLD else number * 1000

    raise ValueError(f"Unsupported occurredAt value: {value!r}")


class RecordNormalizer:
    """Builds RawEvents from provider payloads shaped like the ingestion feed."""

    def __init__(self, resolver: Optional[MerchantResolver] = None):
        self.resolver = resolver or MerchantResolver()

    def merchant_text(self, source: EventSource, record: Dict[str, Any]) -> str:
        if source == EventSource.TRANSACTION:
            return record.get('bodyOrMerchantString') or record.get('subjectOrDescription') or ""
        return merchant_text_from_sender(record.get('senderOrAccountRef') or "")

    def normalize(self, user_id: str, record: Dict[str, Any]) -> RawEvent:
        raw_identifier = str(record.get('rawIdentifier') or "").strip()
        if not raw_identifier:
            raise MalformedRecord("rawIdentifier is missing")

        try:
            source = EventSource(record.get('source'))
        except ValueError as e:
            raise MalformedRecord(f"Unknown source: {record.get('source')}", raw_identifier) from e

        try:
            amount = Money.parse(record.get('amount'), record.get('currency'))
        except ValueError as e:
            raise MalformedRecord(f"Unparseable amount for {raw_identifier}: {e}", raw_identifier) from e

        try:
            occurred_at = parse_occurred_at(record.get('occurredAt'))
        except (ValueError, TypeError, OverflowError) as e:
            raise MalformedRecord(f"Unparseable occurredAt for {raw_identifier}: {e}", raw_identifier) from e

        try:
            return RawEvent(
                eventId=RawEvent.deterministic_id(user_id, source, raw_identifier),
                userId=user_id,
                source=source,
                subjectOrDescription=record.get('subjectOrDescription') or "",
                bodyOrMerchantString=record.get('bodyOrMerchantString') or "",
                senderOrAccountRef=record.get('senderOrAccountRef') or "",
                amount=amount,
                occurredAt=occurred_at,
                rawIdentifier=raw_identifier,
                merchantKey=self.resolver.resolve(self.merchant_text(source, record)),
            )
        except ValidationError as e:
            raise MalformedRecord(f"Invalid record {raw_identifier}: {e}", raw_identifier) from e
