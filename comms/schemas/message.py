from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .participant import ParticipantType


class MessageCreateRequest(BaseModel):
    body: str | None = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_type: ParticipantType
    sender_name: str | None = None
    body: str
    message_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
