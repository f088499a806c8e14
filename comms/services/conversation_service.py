import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from comms.auth_config import Actor
from comms.core.tasks import BackgroundTaskRunner
from comms.models import Conversation
from comms.realtime.broadcaster import Broadcaster
from comms.realtime.keys import ParticipantKey
from comms.repositories.conversation_repository import ConversationRepository
from comms.repositories.message_repository import MessageRepository
from comms.repositories.user_repository import UserRepository
from comms.schemas.conversation import ConversationStatus
from comms.schemas.participant import ParticipantType

from .exceptions import (
    ConflictError,
    ConversationNotFoundError,
    DatabaseError,
    InvalidRequestError,
    NoCounterpartyError,
    NotAuthorizedError,
    UserNotFoundError,
)
from .notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

# conversation:new payload field naming the initiator, per initiating role
INITIATOR_NAME_FIELDS = {
    ParticipantType.USER: "customerName",
    ParticipantType.DRIVER: "driverName",
    ParticipantType.ADMIN: "adminName",
}


def _participant_keys(participants: list[dict[str, Any]]) -> list[ParticipantKey]:
    return [
        ParticipantKey(p["participant_type"], p["participant_id"]) for p in participants
    ]


class ConversationService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        user_repository: UserRepository,
        broadcaster: Broadcaster,
        dispatcher: NotificationDispatcher,
        tasks: BackgroundTaskRunner,
    ):
        self.conv_repo = conversation_repository
        self.msg_repo = message_repository
        self.user_repo = user_repository
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.tasks = tasks
        # The session is shared via the repositories
        self.session = conversation_repository.session

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Integrity error while {action}: {e}", exc_info=True)
            raise ConflictError(f"Could not complete {action} due to a data conflict.")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error while {action}: {e}", exc_info=True)
            raise DatabaseError(f"Failed {action} due to a database error.")

    async def _require_conversation(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()
        return conversation

    async def _require_participant(self, conversation_id: UUID, actor: Actor) -> None:
        if not await self.conv_repo.is_participant(
            conversation_id, actor.id, actor.role
        ):
            raise NotAuthorizedError("Not a participant")

    # Listing

    async def list_conversations(
        self,
        actor: Actor,
        limit: int,
        offset: int = 0,
        status: ConversationStatus | None = None,
        include_all: bool = False,
    ) -> dict[str, Any]:
        try:
            conversations, total = await self.conv_repo.list_for_participant(
                actor.id,
                actor.role,
                limit=limit,
                offset=offset,
                status=status,
                include_all=include_all,
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error listing conversations: {e}", exc_info=True)
            raise DatabaseError("Failed to list conversations due to a database error.")
        return {"conversations": conversations, "total": total}

    async def list_all_conversations(
        self,
        limit: int,
        offset: int = 0,
        status: ConversationStatus | None = None,
        include_all: bool = False,
    ) -> dict[str, Any]:
        """Back-office listing with each conversation's participants attached."""
        try:
            conversations, total = await self.conv_repo.list_all(
                limit=limit, offset=offset, status=status, include_all=include_all
            )
            participants = await self.conv_repo.get_participants_for_many(
                [row["id"] for row in conversations]
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error listing conversations: {e}", exc_info=True)
            raise DatabaseError("Failed to list conversations due to a database error.")
        for row in conversations:
            row["participants"] = participants[row["id"]]
        return {"conversations": conversations, "total": total}

    async def get_conversation_detail(self, conversation_id: UUID) -> dict[str, Any]:
        conversation = await self._require_conversation(conversation_id)
        participants = await self.conv_repo.get_participants(conversation_id)
        return {
            "id": conversation.id,
            "subject": conversation.subject,
            "type": conversation.type,
            "status": conversation.status,
            "created_by_id": conversation.created_by_id,
            "created_by_type": conversation.created_by_type,
            "created_at": conversation.created_at,
            "updated_at": conversation.updated_at,
            "participants": participants,
        }

    async def get_unread_count(self, actor: Actor) -> int:
        return await self.conv_repo.get_unread_count(actor.id, actor.role)

    # Messages

    async def get_messages(
        self,
        conversation_id: UUID,
        actor: Actor,
        limit: int,
        before: datetime | None = None,
        moderated: bool = False,
    ) -> list[dict[str, Any]]:
        """Messages oldest first. Moderated (admin back-office) reads skip the
        participant check but require the conversation to exist."""
        if moderated:
            await self._require_conversation(conversation_id)
        else:
            await self._require_participant(conversation_id, actor)
        return await self.msg_repo.list_messages(
            conversation_id, limit=limit, before=before
        )

    async def mark_read(
        self, conversation_id: UUID, actor: Actor, moderated: bool = False
    ) -> None:
        if moderated:
            await self._require_conversation(conversation_id)
        else:
            await self._require_participant(conversation_id, actor)
        await self.conv_repo.mark_read(conversation_id, actor.id, actor.role)
        await self._commit("marking the conversation read")

    async def post_message(
        self,
        conversation_id: UUID,
        actor: Actor,
        body: str | None,
        moderated: bool = False,
    ) -> dict[str, Any]:
        """Stores a message, pushes it to live sessions and emails the other side.

        Participation is checked before anything else; a blank body is
        rejected before anything is written. Email notifications run in the
        background and never affect the response.
        """
        if moderated:
            conversation = await self._require_conversation(conversation_id)
        else:
            await self._require_participant(conversation_id, actor)
            conversation = await self._require_conversation(conversation_id)

        text = (body or "").strip()
        if not text:
            raise InvalidRequestError("Message body is required")

        try:
            message = await self.msg_repo.create_message(
                conversation_id=conversation_id,
                sender_id=actor.id,
                sender_type=actor.role,
                body=text,
            )
            await self.conv_repo.mark_read(conversation_id, actor.id, actor.role)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error posting message: {e}", exc_info=True)
            raise DatabaseError("Failed to post message due to a database error.")
        await self._commit("posting the message")

        message_row = await self.msg_repo.get_message_with_sender(message.id)
        participants = await self.conv_repo.get_participants(conversation_id)
        logger.info(
            f"Message {message.id} posted to {conversation_id} by "
            f"{actor.role.value}:{actor.id}"
        )

        await self._announce_message(conversation, message_row, participants, actor)
        return message_row

    async def _announce_message(
        self,
        conversation: Conversation,
        message_row: dict[str, Any],
        participants: list[dict[str, Any]],
        actor: Actor,
    ) -> None:
        await self.broadcaster.broadcast(
            _participant_keys(participants),
            "message:new",
            {
                "conversationId": conversation.id,
                "subject": conversation.subject,
                "senderName": message_row["sender_name"],
                "message": message_row,
            },
        )

        # Counter-party notification: never the sender, never the sender's role.
        recipients = [
            (p["participant_id"], p["participant_type"])
            for p in participants
            if p["participant_type"] != actor.role and p["participant_id"] != actor.id
        ]
        if recipients:
            self.tasks.spawn(
                self._notify_participants(
                    recipients,
                    sender_name=message_row["sender_name"],
                    body=message_row["body"],
                    subject=conversation.subject,
                ),
                name=f"notify-message-{message_row['id']}",
            )

    async def _notify_participants(
        self,
        recipients: list[tuple[UUID, ParticipantType]],
        sender_name: str,
        body: str,
        subject: str | None,
    ) -> None:
        await self.dispatcher.gather_isolated(
            self.dispatcher.send_message_notification(
                recipient_id, recipient_type, sender_name, body, subject
            )
            for recipient_id, recipient_type in recipients
        )

    # Conversation lifecycle

    async def start_conversation(
        self,
        actor: Actor,
        subject: str | None,
        body: str | None,
        default_subject: str,
    ) -> dict[str, Any]:
        """Opens a conversation between the caller and the support admin and
        posts the first message in it."""
        text = (body or "").strip()
        if not text:
            raise InvalidRequestError("Message body is required")
        subject = (subject or "").strip() or default_subject

        admin = await self.user_repo.find_support_admin()
        if admin is None:
            logger.error("No admin available to receive a new conversation")
            raise NoCounterpartyError()

        try:
            conversation = await self.conv_repo.create_conversation(
                subject=subject,
                conversation_type="direct",
                created_by_id=actor.id,
                created_by_type=actor.role,
                participants=[
                    (actor.id, actor.role),
                    (admin.id, ParticipantType.ADMIN),
                ],
            )
            message = await self.msg_repo.create_message(
                conversation_id=conversation.id,
                sender_id=actor.id,
                sender_type=actor.role,
                body=text,
            )
            await self.conv_repo.mark_read(conversation.id, actor.id, actor.role)
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Integrity error starting conversation: {e}", exc_info=True)
            raise ConflictError("Could not start conversation due to a data conflict.")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error starting conversation: {e}", exc_info=True)
            raise DatabaseError("Failed to start conversation due to a database error.")
        await self._commit("starting the conversation")

        message_row = await self.msg_repo.get_message_with_sender(message.id)
        participants = await self.conv_repo.get_participants(conversation.id)
        logger.info(
            f"Conversation {conversation.id} started by {actor.role.value}:{actor.id} "
            f"with admin {admin.id}"
        )

        await self._announce_message(conversation, message_row, participants, actor)
        await self.broadcaster.broadcast(
            [ParticipantKey(ParticipantType.ADMIN, admin.id)],
            "conversation:new",
            {
                "conversationId": conversation.id,
                "subject": conversation.subject,
                INITIATOR_NAME_FIELDS[actor.role]: message_row["sender_name"],
            },
        )
        return {"conversation": conversation, "message": message_row}

    async def create_conversation(
        self,
        actor: Actor,
        subject: str | None,
        conversation_type: str | None,
        participant_refs: list[tuple[UUID, ParticipantType]],
    ) -> dict[str, Any]:
        """Back-office conversation with an explicit participant list."""
        others = []
        for ref in participant_refs:
            if ref == (actor.id, actor.role) or ref in others:
                continue
            others.append(ref)
        if not others:
            raise InvalidRequestError("At least one participant is required")

        for participant_id, _ in others:
            if await self.user_repo.get_user_by_id(participant_id) is None:
                raise UserNotFoundError(f"User {participant_id} not found")

        conversation_type = conversation_type or (
            "direct" if len(others) == 1 else "group"
        )
        try:
            conversation = await self.conv_repo.create_conversation(
                subject=(subject or "").strip() or None,
                conversation_type=conversation_type,
                created_by_id=actor.id,
                created_by_type=actor.role,
                participants=[(actor.id, actor.role), *others],
            )
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Integrity error creating conversation: {e}", exc_info=True)
            raise ConflictError("Participant is already in this conversation.")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error creating conversation: {e}", exc_info=True)
            raise DatabaseError(
                "Failed to create conversation due to a database error."
            )
        await self._commit("creating the conversation")

        admin_name = await self.user_repo.get_display_name(actor.id, actor.role)
        await self.broadcaster.broadcast(
            [
                ParticipantKey(participant_type, participant_id)
                for participant_id, participant_type in others
            ],
            "conversation:new",
            {
                "conversationId": conversation.id,
                "subject": conversation.subject,
                INITIATOR_NAME_FIELDS[actor.role]: admin_name,
            },
        )
        return await self.get_conversation_detail(conversation.id)

    async def update_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> dict[str, Any]:
        """Any of open/closed/archived may follow any other."""
        try:
            updated = await self.conv_repo.update_status(conversation_id, status)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error updating status: {e}", exc_info=True)
            raise DatabaseError("Failed to update status due to a database error.")
        if not updated:
            raise ConversationNotFoundError()
        await self._commit("updating the conversation status")
        logger.info(f"Conversation {conversation_id} moved to {status.value}")
        return await self.get_conversation_detail(conversation_id)

