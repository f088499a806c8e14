from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.types import Uuid

from comms.schemas.communication import Channel, DeliveryStatus
from comms.schemas.participant import ParticipantType

from .base import BaseModel, enum_type


class CommunicationLog(BaseModel):
    """One row per dispatch attempt, immediate or scheduled."""

    __tablename__ = "communication_log"

    recipient_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    recipient_type = Column(enum_type(ParticipantType), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    recipient_contact = Column(String(255), nullable=True)
    channel = Column(enum_type(Channel), nullable=False)
    direction = Column(String(20), nullable=False, default="outbound")
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    template_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("communication_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(enum_type(DeliveryStatus), nullable=False, index=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=True, index=True)
    # Set when the sweeper takes a due row; the row stays scheduled until the
    # delivery outcome is known.
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    sent_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    error_message = Column(Text, nullable=True)
