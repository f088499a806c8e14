from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import DateTime, and_, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from comms.models import (
    Conversation,
    ConversationParticipant,
    DriverProfile,
    Message,
    User,
)
from comms.models.base import utcnow
from comms.schemas.conversation import ConversationStatus
from comms.schemas.participant import ParticipantType

from .base import BaseRepository
from .user_repository import display_name

# last_read_at NULL means "never read"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

CONVERSATION_FIELDS = (
    "id",
    "subject",
    "type",
    "status",
    "created_by_id",
    "created_by_type",
    "created_at",
    "updated_at",
)


def _conversation_row(conversation: Conversation, **extra: Any) -> dict[str, Any]:
    row = {field: getattr(conversation, field) for field in CONVERSATION_FIELDS}
    row.update(extra)
    return row


def _last_read_or_epoch():
    return func.coalesce(
        ConversationParticipant.last_read_at,
        literal(EPOCH, DateTime(timezone=True)),
    )


def _status_filter(status: ConversationStatus | None, include_all: bool):
    if include_all:
        return None
    if status is None:
        return Conversation.status != ConversationStatus.ARCHIVED
    return Conversation.status == status


class ConversationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    def _activity_columns(self):
        """Correlated per-conversation aggregates over its messages."""
        owned = Message.conversation_id == Conversation.id
        latest = (Message.created_at.desc(), Message.id.desc())
        message_count = (
            select(func.count(Message.id)).where(owned).scalar_subquery()
        )
        last_message = (
            select(Message.body).where(owned).order_by(*latest).limit(1)
        ).scalar_subquery()
        last_sender_type = (
            select(Message.sender_type).where(owned).order_by(*latest).limit(1)
        ).scalar_subquery()
        last_message_at = (
            select(func.max(Message.created_at)).where(owned).scalar_subquery()
        )
        return message_count, last_message, last_sender_type, last_message_at

    async def create_conversation(
        self,
        subject: str | None,
        conversation_type: str,
        created_by_id: UUID,
        created_by_type: ParticipantType,
        participants: Iterable[tuple[UUID, ParticipantType]],
    ) -> Conversation:
        """Adds the conversation and its participant rows to the current transaction.

        Nothing is committed here; the caller commits or rolls back the unit.
        """
        conversation = Conversation(
            subject=subject,
            type=conversation_type,
            status=ConversationStatus.OPEN,
            created_by_id=created_by_id,
            created_by_type=created_by_type,
        )
        self.session.add(conversation)
        await self.session.flush()

        for participant_id, participant_type in participants:
            self.session.add(
                ConversationParticipant(
                    conversation_id=conversation.id,
                    participant_id=participant_id,
                    participant_type=participant_type,
                    role="member",
                )
            )
        await self.session.flush()
        return conversation

    async def get_conversation_by_id(
        self, conversation_id: UUID
    ) -> Conversation | None:
        stmt = (
            select(Conversation)
            .filter(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def is_participant(
        self,
        conversation_id: UUID,
        participant_id: UUID,
        participant_type: ParticipantType,
    ) -> bool:
        stmt = select(ConversationParticipant.id).filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.participant_id == participant_id,
            ConversationParticipant.participant_type == participant_type,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def list_for_participant(
        self,
        participant_id: UUID,
        participant_type: ParticipantType,
        limit: int = 50,
        offset: int = 0,
        status: ConversationStatus | None = None,
        include_all: bool = False,
    ) -> tuple[list[dict[str, Any]], int]:
        """Conversations the identity takes part in, most recent activity first."""
        membership = and_(
            ConversationParticipant.conversation_id == Conversation.id,
            ConversationParticipant.participant_id == participant_id,
            ConversationParticipant.participant_type == participant_type,
        )
        status_clause = _status_filter(status, include_all)

        message_count, last_message, last_sender_type, last_message_at = (
            self._activity_columns()
        )
        unread_count = (
            select(func.count(Message.id))
            .where(
                Message.conversation_id == Conversation.id,
                Message.created_at > _last_read_or_epoch(),
            )
            .scalar_subquery()
        )

        stmt = select(
            Conversation,
            message_count,
            last_message,
            last_sender_type,
            last_message_at,
            unread_count,
        ).join(ConversationParticipant, membership)
        count_stmt = (
            select(func.count(Conversation.id))
            .select_from(Conversation)
            .join(ConversationParticipant, membership)
        )
        if status_clause is not None:
            stmt = stmt.filter(status_clause)
            count_stmt = count_stmt.filter(status_clause)

        stmt = (
            stmt.order_by(
                func.coalesce(last_message_at, Conversation.created_at).desc(),
                Conversation.id,
            )
            .limit(limit)
            .offset(offset)
        )

        result = await self.session.execute(stmt)
        rows = [
            _conversation_row(
                conversation,
                message_count=count or 0,
                last_message=body,
                last_sender_type=sender_type,
                last_message_at=last_at,
                unread_count=unread or 0,
            )
            for conversation, count, body, sender_type, last_at, unread in result.all()
        ]
        total = (await self.session.execute(count_stmt)).scalar_one()
        return rows, total

    async def list_all(
        self,
        limit: int = 50,
        offset: int = 0,
        status: ConversationStatus | None = None,
        include_all: bool = False,
    ) -> tuple[list[dict[str, Any]], int]:
        """Back-office listing, not scoped to any participant."""
        status_clause = _status_filter(status, include_all)
        message_count, last_message, last_sender_type, last_message_at = (
            self._activity_columns()
        )

        stmt = select(
            Conversation, message_count, last_message, last_sender_type, last_message_at
        )
        count_stmt = select(func.count(Conversation.id))
        if status_clause is not None:
            stmt = stmt.filter(status_clause)
            count_stmt = count_stmt.filter(status_clause)

        stmt = (
            stmt.order_by(
                func.coalesce(last_message_at, Conversation.created_at).desc(),
                Conversation.id,
            )
            .limit(limit)
            .offset(offset)
        )

        result = await self.session.execute(stmt)
        rows = [
            _conversation_row(
                conversation,
                message_count=count or 0,
                last_message=body,
                last_sender_type=sender_type,
                last_message_at=last_at,
            )
            for conversation, count, body, sender_type, last_at in result.all()
        ]
        total = (await self.session.execute(count_stmt)).scalar_one()
        return rows, total

    async def get_participants(self, conversation_id: UUID) -> list[dict[str, Any]]:
        """Participants with their resolved display name and account email."""
        grouped = await self.get_participants_for_many([conversation_id])
        return grouped[conversation_id]

    async def get_participants_for_many(
        self, conversation_ids: list[UUID]
    ) -> dict[UUID, list[dict[str, Any]]]:
        grouped: dict[UUID, list[dict[str, Any]]] = {cid: [] for cid in conversation_ids}
        if not conversation_ids:
            return grouped
        stmt = (
            select(ConversationParticipant, User, DriverProfile)
            .outerjoin(User, User.id == ConversationParticipant.participant_id)
            .outerjoin(
                DriverProfile,
                DriverProfile.user_id == ConversationParticipant.participant_id,
            )
            .filter(ConversationParticipant.conversation_id.in_(conversation_ids))
            .order_by(ConversationParticipant.joined_at, ConversationParticipant.id)
        )
        result = await self.session.execute(stmt)
        for participant, user, profile in result.all():
            grouped[participant.conversation_id].append(
                {
                    "id": participant.id,
                    "conversation_id": participant.conversation_id,
                    "participant_id": participant.participant_id,
                    "participant_type": participant.participant_type,
                    "role": participant.role,
                    "joined_at": participant.joined_at,
                    "last_read_at": participant.last_read_at,
                    "participant_name": display_name(
                        participant.participant_type, user, profile, fallback=False
                    ),
                    "participant_email": user.email if user is not None else None,
                }
            )
        return grouped

    async def mark_read(
        self,
        conversation_id: UUID,
        participant_id: UUID,
        participant_type: ParticipantType,
    ) -> None:
        stmt = (
            update(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.participant_id == participant_id,
                ConversationParticipant.participant_type == participant_type,
            )
            .values(last_read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def update_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> bool:
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_unread_count(
        self, participant_id: UUID, participant_type: ParticipantType
    ) -> int:
        """Number of open conversations holding at least one unread message."""
        stmt = (
            select(func.count(func.distinct(Conversation.id)))
            .select_from(Conversation)
            .join(
                ConversationParticipant,
                and_(
                    ConversationParticipant.conversation_id == Conversation.id,
                    ConversationParticipant.participant_id == participant_id,
                    ConversationParticipant.participant_type == participant_type,
                ),
            )
            .join(Message, Message.conversation_id == Conversation.id)
            .filter(
                Conversation.status == ConversationStatus.OPEN,
                Message.created_at > _last_read_or_epoch(),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
