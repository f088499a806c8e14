import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .message import MessageResponse
from .participant import ParticipantResponse, ParticipantType


class ConversationStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class StartConversationRequest(BaseModel):
    subject: str | None = None
    body: str | None = None


class ParticipantRef(BaseModel):
    id: UUID
    type: ParticipantType = ParticipantType.USER


class AdminConversationCreateRequest(BaseModel):
    subject: str | None = None
    type: str | None = None
    participant_ids: list[ParticipantRef] = Field(
        default_factory=list, alias="participantIds"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("participant_ids", mode="before")
    @classmethod
    def accept_bare_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"id": item} if isinstance(item, str) else item for item in value]
        return value


class StatusUpdateRequest(BaseModel):
    status: str | None = None


class ConversationResponse(BaseModel):
    id: UUID
    subject: str | None = None
    type: str
    status: ConversationStatus
    created_by_id: UUID
    created_by_type: ParticipantType
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationSummary(ConversationResponse):
    message_count: int = 0
    last_message: str | None = None
    last_sender_type: ParticipantType | None = None
    last_message_at: datetime | None = None
    unread_count: int | None = None
    participants: list[ParticipantResponse] | None = None


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]
    total: int


class ConversationDetailResponse(ConversationResponse):
    participants: list[ParticipantResponse]


class ConversationStartedResponse(BaseModel):
    conversation: ConversationResponse
    message: MessageResponse


class UnreadCountResponse(BaseModel):
    count: int
