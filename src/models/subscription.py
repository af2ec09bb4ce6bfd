"""
Subscription models.

Covers tracked subscriptions, their append-only price history and the
savings figures produced when a subscription is cancelled.
"""

import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Self

from models.detection_candidate import Cadence
from models.money import Currency

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal("0.01")


class RenewalStatus(str, Enum):
    """Where a subscription stands in the renewal confirmation cycle."""
    UNSET = "unset"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED_RENEWED = "confirmed_renewed"
    CONFIRMED_CANCELLED = "confirmed_cancelled"


class Subscription(BaseModel):
    """A user-confirmed recurring charge."""
    subscription_id: uuid.UUID = Field(alias="subscriptionId")
    user_id: str = Field(alias="userId")
    merchant_key: Optional[str] = Field(default=None, alias="merchantKey")
    name: str = Field(min_length=1)
    cost: Decimal = Field(gt=0)
    currency: Currency
    cadence: Cadence
    next_occurrence: int = Field(alias="nextOccurrence")
    is_active: bool = Field(default=True, alias="isActive")
    renewal_status: RenewalStatus = Field(default=RenewalStatus.UNSET, alias="renewalStatus")
    cancelled_at: Optional[int] = Field(default=None, alias="cancelledAt")
    originating_candidate_id: Optional[uuid.UUID] = Field(default=None, alias="originatingCandidateId")
    created_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
        alias="createdAt"
    )
    updated_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
        alias="updatedAt"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @field_validator('next_occurrence', 'cancelled_at', 'created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Timestamp must be a positive integer representing milliseconds since epoch")
        return v

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)
            elif isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()
        for field in ['nextOccurrence', 'cancelledAt', 'createdAt', 'updatedAt']:
            if field in converted_data and isinstance(converted_data[field], Decimal):
                converted_data[field] = int(converted_data[field])

        if 'renewalStatus' in converted_data and isinstance(converted_data['renewalStatus'], str):
            try:
                converted_data['renewalStatus'] = RenewalStatus(converted_data['renewalStatus'])
            except ValueError:
                logger.warning(f"Invalid RenewalStatus value: {converted_data['renewalStatus']}")
                converted_data['renewalStatus'] = RenewalStatus.UNSET

        return cls.model_validate(converted_data)


class PriceChangeEntry(BaseModel):
    """Append-only record of one cost transition."""
    entry_id: str = Field(alias="entryId")
    subscription_id: uuid.UUID = Field(alias="subscriptionId")
    user_id: str = Field(alias="userId")
    old_price: Decimal = Field(alias="oldPrice")
    new_price: Decimal = Field(alias="newPrice")
    currency: Currency
    percent_change: Decimal = Field(alias="percentChange")
    detected_at: int = Field(alias="detectedAt")
    raw_event_id: Optional[str] = Field(default=None, alias="rawEventId")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @classmethod
    def for_transition(
        cls,
        subscription: Subscription,
        new_price: Decimal,
        detected_at: int,
        raw_event_id: Optional[str] = None
    ) -> 'PriceChangeEntry':
        """
        Build the entry for moving subscription.cost to new_price.

        The entry id is derived from the subscription and the price being
        replaced, so recording the same transition twice yields the same id.
        """
        old_price = subscription.cost
        percent = ((new_price - old_price) / old_price * 100).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)
        return cls(
            entryId=f"{subscription.subscription_id}#{subscription.next_occurrence}#{old_price}",
            subscriptionId=subscription.subscription_id,
            userId=subscription.user_id,
            oldPrice=old_price,
            newPrice=new_price,
            currency=subscription.currency,
            percentChange=percent,
            detectedAt=detected_at,
            rawEventId=raw_event_id,
        )

    def to_dynamodb_item(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data['subscriptionId'] = str(self.subscription_id)
        data['currency'] = self.currency.value
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        converted_data = data.copy()
        if isinstance(converted_data.get('detectedAt'), Decimal):
            converted_data['detectedAt'] = int(converted_data['detectedAt'])
        return cls.model_validate(converted_data)


class PriceHistoryStats(BaseModel):
    """Derived view over a subscription's price history."""
    current_price: Decimal = Field(alias="currentPrice")
    starting_price: Decimal = Field(alias="startingPrice")
    percent_change: Decimal = Field(alias="percentChange")
    change_count: int = Field(alias="changeCount")
    last_change_at: Optional[int] = Field(default=None, alias="lastChangeAt")

    model_config = ConfigDict(populate_by_name=True, json_encoders={Decimal: str})


class CancellationSavings(BaseModel):
    """Normalized savings for one cancelled subscription."""
    subscription_id: uuid.UUID = Field(alias="subscriptionId")
    name: str
    currency: Currency
    monthly_savings: Decimal = Field(alias="monthlySavings")
    yearly_savings: Decimal = Field(alias="yearlySavings")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str, uuid.UUID: str},
        use_enum_values=False
    )


class SavingsSummary(BaseModel):
    """Aggregate savings across cancelled subscriptions, per currency."""
    cancelled_count: int = Field(alias="cancelledCount")
    monthly_savings: Dict[str, Decimal] = Field(default_factory=dict, alias="monthlySavings")
    yearly_savings: Dict[str, Decimal] = Field(default_factory=dict, alias="yearlySavings")
    since: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, json_encoders={Decimal: str})


class RenewalConfirmation(BaseModel):
    """Request body for confirming a renewal."""
    action: Literal["renewed", "cancelled"]
    new_cost: Optional[Decimal] = Field(default=None, alias="newCost", gt=0)

    model_config = ConfigDict(populate_by_name=True)
