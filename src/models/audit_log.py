"""Audit trail entries emitted by user decisions."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Self

SUBSCRIPTION_DETECTED_ACCEPTED = "subscription_detected_accepted"


class AuditLogEntry(BaseModel):
    entry_id: str = Field(alias="entryId")
    user_id: str = Field(alias="userId")
    action: str
    resource_type: Optional[str] = Field(default=None, alias="resourceType")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
        alias="createdAt"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        }
    )

    def to_dynamodb_item(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        converted_data = data.copy()
        if isinstance(converted_data.get('createdAt'), Decimal):
            converted_data['createdAt'] = int(converted_data['createdAt'])
        return cls.model_validate(converted_data)
