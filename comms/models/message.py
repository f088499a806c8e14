from sqlalchemy import Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from comms.schemas.participant import ParticipantType

from .base import BaseModel, enum_type


class Message(BaseModel):
    __tablename__ = "messages"

    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False, index=True
    )
    sender_id = Column(Uuid(as_uuid=True), nullable=False)
    sender_type = Column(enum_type(ParticipantType), nullable=False)
    body = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="text")

    conversation = relationship("Conversation", back_populates="messages")
