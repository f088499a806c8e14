from .base import BaseModel, metadata
from .communication_log import CommunicationLog
from .conversation import Conversation
from .message import Message
from .participant import ConversationParticipant
from .template import CommunicationTemplate
from .user import DriverProfile, User, UserRole

__all__ = [
    "BaseModel",
    "metadata",
    "User",
    "UserRole",
    "DriverProfile",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "CommunicationTemplate",
    "CommunicationLog",
]
