from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .communication import Channel


class TemplateWriteRequest(BaseModel):
    name: str | None = None
    channel: Channel = Channel.EMAIL
    subject: str | None = None
    body: str | None = None
    variables: list[str] = []


class TemplateResponse(BaseModel):
    id: UUID
    name: str
    channel: Channel
    subject: str | None = None
    body: str
    variables: list[str]
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
