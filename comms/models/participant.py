from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from comms.schemas.participant import ParticipantType

from .base import BaseModel, enum_type, utcnow


class ConversationParticipant(BaseModel):
    __tablename__ = "conversation_participants"

    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False
    )
    participant_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    participant_type = Column(enum_type(ParticipantType), nullable=False)
    role = Column(String(20), nullable=False, default="member")
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # NULL means "never read"; queries treat it as the epoch.
    last_read_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="participants")
    user = relationship("User", foreign_keys=[participant_id])

    __table_args__ = (
        UniqueConstraint(
            "conversation_id",
            "participant_id",
            "participant_type",
            name="uq_conversation_participant_identity",
        ),
    )
