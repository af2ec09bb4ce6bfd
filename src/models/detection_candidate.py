"""
Detection candidate models.

A DetectionCandidate is a proposed recurring charge for one (user, merchant)
pair, waiting for the user to accept or dismiss it.
"""

import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import Self

from models.money import Currency

logger = logging.getLogger(__name__)

CANDIDATE_NAMESPACE = uuid.UUID("0b8f0a43-6a9e-4a43-8d07-2f6f4a7b9c11")


class Cadence(str, Enum):
    """Recurring billing period."""
    DAILY = "daily"      # ~1 day intervals
    WEEKLY = "weekly"    # ~7 day intervals
    MONTHLY = "monthly"  # ~30 day intervals
    YEARLY = "yearly"    # ~365 day intervals


class CandidateStatus(str, Enum):
    """Review status of a detection candidate."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


def candidate_id_for(user_id: str, merchant_key: str) -> uuid.UUID:
    """One candidate per (user, merchant); the id is derived, never random."""
    return uuid.uuid5(CANDIDATE_NAMESPACE, f"{user_id}:{merchant_key}")


def subscription_id_for(candidate_id: uuid.UUID) -> uuid.UUID:
    """Subscription materialized from a candidate; concurrent accepts agree on it."""
    return uuid.uuid5(CANDIDATE_NAMESPACE, f"subscription:{candidate_id}")


class CandidateOverrides(BaseModel):
    """User-supplied values that replace the proposed ones on acceptance."""
    name: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    cadence: Optional[Cadence] = None
    next_occurrence: Optional[int] = Field(default=None, alias="nextOccurrence", ge=0)

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={Decimal: str},
        use_enum_values=False
    )


class DetectionCandidate(BaseModel):
    """
    Proposed recurring charge.

    accepted candidates always carry resulting_subscription_id; pending and
    dismissed candidates never do.
    """
    candidate_id: uuid.UUID = Field(alias="candidateId")
    user_id: str = Field(alias="userId")
    merchant_key: str = Field(alias="merchantKey")

    # Proposal
    proposed_name: str = Field(alias="proposedName")
    proposed_amount: Decimal = Field(alias="proposedAmount")
    proposed_currency: Currency = Field(alias="proposedCurrency")
    proposed_cadence: Cadence = Field(alias="proposedCadence")
    proposed_next_occurrence: int = Field(alias="proposedNextOccurrence")

    # Scores
    confidence: Decimal = Field(ge=0, le=1)
    periodicity_score: Decimal = Field(default=Decimal("0"), alias="periodicityScore", ge=0, le=1)
    amount_stability_score: Decimal = Field(default=Decimal("0"), alias="amountStabilityScore", ge=0, le=1)
    detection_reason: Optional[str] = Field(default=None, alias="detectionReason")
    supporting_event_ids: List[str] = Field(default_factory=list, alias="supportingEventIds")

    # Review
    status: CandidateStatus = CandidateStatus.PENDING
    reviewed_at: Optional[int] = Field(default=None, alias="reviewedAt")
    resulting_subscription_id: Optional[uuid.UUID] = Field(default=None, alias="resultingSubscriptionId")
    acceptance_overrides: Optional[CandidateOverrides] = Field(default=None, alias="acceptanceOverrides")

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

    @field_validator('proposed_next_occurrence', 'created_at', 'updated_at', 'reviewed_at')
    @classmethod
    def check_positive_timestamp(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Timestamp must be a positive integer representing milliseconds since epoch")
        return v

    @model_validator(mode='after')
    def check_subscription_pairing(self) -> Self:
        if self.status == CandidateStatus.ACCEPTED and self.resulting_subscription_id is None:
            raise ValueError("Accepted candidate must reference its subscription")
        if self.status != CandidateStatus.ACCEPTED and self.resulting_subscription_id is not None:
            raise ValueError(f"{self.status.value} candidate cannot reference a subscription")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != CandidateStatus.PENDING

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)
            elif isinstance(value, Enum):
                data[key] = value.value

        if 'acceptanceOverrides' in data:
            overrides = data['acceptanceOverrides']
            if isinstance(overrides.get('cadence'), Enum):
                overrides['cadence'] = overrides['cadence'].value
        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        int_fields = ['proposedNextOccurrence', 'createdAt', 'updatedAt', 'reviewedAt']
        for field in int_fields:
            if field in converted_data and isinstance(converted_data[field], Decimal):
                converted_data[field] = int(converted_data[field])

        overrides = converted_data.get('acceptanceOverrides')
        if overrides and isinstance(overrides.get('nextOccurrence'), Decimal):
            converted_data['acceptanceOverrides'] = {
                **overrides, 'nextOccurrence': int(overrides['nextOccurrence'])
            }

        if 'status' in converted_data and isinstance(converted_data['status'], str):
            try:
                converted_data['status'] = CandidateStatus(converted_data['status'])
            except ValueError:
                logger.warning(f"Invalid CandidateStatus value: {converted_data['status']}")
                converted_data['status'] = CandidateStatus.PENDING

        return cls.model_validate(converted_data)
