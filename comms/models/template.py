from sqlalchemy import JSON, Column, ForeignKey, String, Text
from sqlalchemy.types import Uuid

from comms.schemas.communication import Channel

from .base import BaseModel, enum_type


class CommunicationTemplate(BaseModel):
    __tablename__ = "communication_templates"

    name = Column(String(255), nullable=False)
    channel = Column(enum_type(Channel), nullable=False, default=Channel.EMAIL)
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    variables = Column(JSON, nullable=False, default=list)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
