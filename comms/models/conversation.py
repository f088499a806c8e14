from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from comms.schemas.conversation import ConversationStatus
from comms.schemas.participant import ParticipantType

from .base import BaseModel, enum_type


class Conversation(BaseModel):
    __tablename__ = "conversations"

    subject = Column(String(255), nullable=True)
    type = Column(String(20), nullable=False, default="direct")
    status = Column(
        enum_type(ConversationStatus),
        nullable=False,
        default=ConversationStatus.OPEN,
    )
    created_by_id = Column(Uuid(as_uuid=True), nullable=False)
    created_by_type = Column(enum_type(ParticipantType), nullable=False)

    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )
    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )
