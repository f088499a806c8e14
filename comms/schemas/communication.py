import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .participant import ParticipantType


class Channel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


# "both" is accepted at the compose boundary and fans out to each channel.
COMPOSE_CHANNELS = {
    "email": [Channel.EMAIL],
    "sms": [Channel.SMS],
    "both": [Channel.EMAIL, Channel.SMS],
}


class RecipientRef(BaseModel):
    id: UUID
    type: ParticipantType = ParticipantType.USER


class ComposeRequest(BaseModel):
    recipient_ids: list[RecipientRef] = Field(
        default_factory=list, alias="recipientIds"
    )
    channel: str | None = None
    subject: str | None = None
    body: str | None = None
    scheduled_for: datetime | None = Field(default=None, alias="scheduledFor")
    template_id: UUID | None = Field(default=None, alias="templateId")
    variables: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("recipient_ids", mode="before")
    @classmethod
    def accept_bare_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"id": item} if isinstance(item, str) else item for item in value]
        return value


class ComposeResult(BaseModel):
    success: bool
    sent: int | None = None
    failed: int | None = None
    scheduled: int | None = None


class CommunicationLogResponse(BaseModel):
    id: UUID
    recipient_id: UUID
    recipient_type: ParticipantType
    recipient_name: str | None = None
    recipient_contact: str | None = None
    channel: Channel
    direction: str
    subject: str | None = None
    body: str
    template_id: UUID | None = None
    status: DeliveryStatus
    scheduled_for: datetime | None = None
    sent_at: datetime | None = None
    sent_by: UUID | None = None
    sent_by_name: str | None = None
    error_message: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityLogPage(BaseModel):
    entries: list[CommunicationLogResponse]
    total: int
    page: int
    limit: int
