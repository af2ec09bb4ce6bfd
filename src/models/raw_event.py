"""
Raw event model.

A RawEvent is one observed payment-like signal, either a receipt-style email
or a bank transaction row, mapped into a provider-independent shape.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Self

from models.money import Currency, Money

RAW_EVENT_NAMESPACE = uuid.UUID("7d4c3f55-2f0e-4d8a-9a51-3c1f0c6f2b10")


class EventSource(str, Enum):
    """Feed a raw record arrived from."""
    EMAIL = "email"
    TRANSACTION = "transaction"


def raw_event_key(source: EventSource, raw_identifier: str) -> str:
    """Store key used for idempotent ingestion of a provider record."""
    return f"{source.value}#{raw_identifier}"


class RawEvent(BaseModel):
    """
    Immutable, normalized payment signal.

    For emails the text fields carry subject, body and sender. For
    transactions they carry description, merchant string and account ref.
    """
    event_id: uuid.UUID = Field(alias="eventId")
    user_id: str = Field(alias="userId")
    source: EventSource
    subject_or_description: str = Field(default="", alias="subjectOrDescription")
    body_or_merchant_string: str = Field(default="", alias="bodyOrMerchantString")
    sender_or_account_ref: str = Field(default="", alias="senderOrAccountRef")
    amount: Money
    occurred_at: int = Field(alias="occurredAt")
    raw_identifier: str = Field(alias="rawIdentifier", min_length=1)
    merchant_key: str = Field(default="", alias="merchantKey")
    created_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
        alias="createdAt"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @field_validator('occurred_at', 'created_at')
    @classmethod
    def check_positive_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Timestamp must be a positive integer representing milliseconds since epoch")
        return v

    @classmethod
    def deterministic_id(cls, user_id: str, source: EventSource, raw_identifier: str) -> uuid.UUID:
        return uuid.uuid5(RAW_EVENT_NAMESPACE, f"{user_id}:{raw_event_key(source, raw_identifier)}")

    @property
    def store_key(self) -> str:
        return raw_event_key(self.source, self.raw_identifier)

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True, exclude={'amount'})
        data['eventId'] = str(self.event_id)
        data['source'] = self.source.value
        data['amount'] = self.amount.amount
        data['currency'] = self.amount.currency.value
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()
        for field in ['occurredAt', 'createdAt']:
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])
        converted_data['amount'] = Money(
            amount=converted_data['amount'],
            currency=Currency(converted_data.pop('currency'))
        )
        return cls.model_validate(converted_data)


class DuplicateChargeAlert(BaseModel):
    """
    Two or more distinct transactions sharing a charge fingerprint.

    Keyed by fingerprint; raw_event_ids is kept sorted so the stored alert
    does not depend on the order events were seen in.
    """
    fingerprint: str
    user_id: str = Field(alias="userId")
    account_ref: str = Field(alias="accountRef")
    amount: Decimal
    currency: Currency
    occurred_on: str = Field(alias="occurredOn")
    merchant_key: str = Field(alias="merchantKey")
    raw_event_ids: List[str] = Field(default_factory=list, alias="rawEventIds")
    detected_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
        alias="detectedAt"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str},
        use_enum_values=False
    )

    @property
    def is_duplicate(self) -> bool:
        return len(self.raw_event_ids) > 1

    def to_dynamodb_item(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data['currency'] = self.currency.value
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        converted_data = data.copy()
        if isinstance(converted_data.get('detectedAt'), Decimal):
            converted_data['detectedAt'] = int(converted_data['detectedAt'])
        return cls.model_validate(converted_data)
