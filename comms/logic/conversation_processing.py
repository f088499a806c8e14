import logging
from datetime import datetime
from typing import Any
from uuid import UUID

# Logic related to processing conversation actions, decoupled from API routes.
from comms.auth_config import Actor
from comms.core.config import settings
from comms.models.base import as_utc
from comms.schemas.conversation import ConversationStatus, ParticipantRef
from comms.services.conversation_service import ConversationService
from comms.services.exceptions import InvalidRequestError

logger = logging.getLogger(__name__)

CUSTOMER_DEFAULT_SUBJECT = "Support Request"
DRIVER_DEFAULT_SUBJECT = "Driver Support Request"


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit < 1:
        return settings.DEFAULT_PAGE_SIZE
    return min(limit, settings.MAX_PAGE_SIZE)


def parse_status(value: str | None) -> ConversationStatus:
    """A status that a conversation can be moved to."""
    try:
        return ConversationStatus((value or "").strip().lower())
    except ValueError:
        raise InvalidRequestError("Invalid status")


def parse_status_filter(value: str | None) -> tuple[ConversationStatus | None, bool]:
    """Listing filter: ``None`` hides archived conversations, ``all`` shows
    everything. Returns ``(status, include_all)``."""
    if value is None or not value.strip():
        return None, False
    if value.strip().lower() == "all":
        return None, True
    return parse_status(value), False


async def handle_list_conversations(
    actor: Actor,
    conv_service: ConversationService,
    limit: int | None = None,
    offset: int = 0,
    status: str | None = None,
) -> dict[str, Any]:
    status_filter, include_all = parse_status_filter(status)
    return await conv_service.list_conversations(
        actor,
        limit=clamp_limit(limit),
        offset=max(offset, 0),
        status=status_filter,
        include_all=include_all,
    )


async def handle_list_all_conversations(
    conv_service: ConversationService,
    limit: int | None = None,
    offset: int = 0,
    status: str | None = None,
) -> dict[str, Any]:
    status_filter, include_all = parse_status_filter(status)
    return await conv_service.list_all_conversations(
        limit=clamp_limit(limit),
        offset=max(offset, 0),
        status=status_filter,
        include_all=include_all,
    )


async def handle_get_unread_count(
    actor: Actor, conv_service: ConversationService
) -> dict[str, int]:
    return {"count": await conv_service.get_unread_count(actor)}


async def handle_start_conversation(
    actor: Actor,
    subject: str | None,
    body: str | None,
    default_subject: str,
    conv_service: ConversationService,
) -> dict[str, Any]:
    logger.debug(f"Handler: {actor.key} starting a conversation")
    return await conv_service.start_conversation(
        actor, subject=subject, body=body, default_subject=default_subject
    )


async def handle_get_messages(
    conversation_id: UUID,
    actor: Actor,
    conv_service: ConversationService,
    limit: int | None = None,
    before: datetime | None = None,
    moderated: bool = False,
) -> list[dict[str, Any]]:
    return await conv_service.get_messages(
        conversation_id,
        actor,
        limit=clamp_limit(limit),
        before=as_utc(before) if before is not None else None,
        moderated=moderated,
    )


async def handle_post_message(
    conversation_id: UUID,
    actor: Actor,
    body: str | None,
    conv_service: ConversationService,
    moderated: bool = False,
) -> dict[str, Any]:
    return await conv_service.post_message(
        conversation_id, actor, body=body, moderated=moderated
    )


async def handle_mark_read(
    conversation_id: UUID,
    actor: Actor,
    conv_service: ConversationService,
    moderated: bool = False,
) -> dict[str, bool]:
    await conv_service.mark_read(conversation_id, actor, moderated=moderated)
    return {"success": True}


async def handle_get_conversation(
    conversation_id: UUID, conv_service: ConversationService
) -> dict[str, Any]:
    return await conv_service.get_conversation_detail(conversation_id)


async def handle_create_conversation(
    actor: Actor,
    subject: str | None,
    conversation_type: str | None,
    participants: list[ParticipantRef],
    conv_service: ConversationService,
) -> dict[str, Any]:
    """Admin-created conversation with an explicit participant list."""
    if conversation_type is not None and conversation_type not in ("direct", "group"):
        raise InvalidRequestError("Invalid conversation type")
    return await conv_service.create_conversation(
        actor,
        subject=subject,
        conversation_type=conversation_type,
        participant_refs=[(ref.id, ref.type) for ref in participants],
    )


async def handle_update_status(
    conversation_id: UUID, status: str | None, conv_service: ConversationService
) -> dict[str, Any]:
    return await conv_service.update_status(conversation_id, parse_status(status))
