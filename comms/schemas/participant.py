import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ParticipantType(str, enum.Enum):
    """The role under which an identity takes part in messaging."""

    USER = "user"
    DRIVER = "driver"
    ADMIN = "admin"


class ParticipantResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    participant_id: UUID
    participant_type: ParticipantType
    role: str
    joined_at: datetime
    last_read_at: datetime | None = None
    participant_name: str | None = None
    participant_email: str | None = None

    model_config = ConfigDict(from_attributes=True)
