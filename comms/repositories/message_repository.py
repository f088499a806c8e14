from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from comms.models import Conversation, DriverProfile, Message, User
from comms.schemas.participant import ParticipantType

from .base import BaseRepository
from .user_repository import display_name

MESSAGE_FIELDS = (
    "id",
    "conversation_id",
    "sender_id",
    "sender_type",
    "body",
    "message_type",
    "created_at",
)


def _message_row(message: Message, sender_name: str | None) -> dict[str, Any]:
    row = {field: getattr(message, field) for field in MESSAGE_FIELDS}
    row["sender_name"] = sender_name
    return row


class MessageRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    def _with_sender(self):
        return (
            select(Message, User, DriverProfile)
            .outerjoin(User, User.id == Message.sender_id)
            .outerjoin(DriverProfile, DriverProfile.user_id == Message.sender_id)
        )

    async def create_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        sender_type: ParticipantType,
        body: str,
        message_type: str = "text",
    ) -> Message:
        """Adds a message and bumps the owning conversation's updated_at."""
        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_type=sender_type,
            body=body,
            message_type=message_type or "text",
        )
        self.session.add(message)
        await self.session.flush()

        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=message.created_at)
            .execution_options(synchronize_session=False)
        )
        return message

    async def get_message_with_sender(self, message_id: UUID) -> dict[str, Any] | None:
        stmt = self._with_sender().filter(Message.id == message_id)
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        message, user, profile = row
        return _message_row(message, display_name(message.sender_type, user, profile))

    async def list_messages(
        self,
        conversation_id: UUID,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Latest page of messages (older than ``before`` if given), oldest first."""
        stmt = self._with_sender().filter(Message.conversation_id == conversation_id)
        if before is not None:
            stmt = stmt.filter(Message.created_at < before)
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        result = await self.session.execute(stmt)
        rows = [
            _message_row(message, display_name(message.sender_type, user, profile))
            for message, user, profile in result.all()
        ]
        rows.reverse()
        return rows
