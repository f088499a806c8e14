import logging
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from comms.api.common import BaseRouter
from comms.auth_config import Actor, current_customer, current_driver
from comms.logic.conversation_processing import (
    CUSTOMER_DEFAULT_SUBJECT,
    DRIVER_DEFAULT_SUBJECT,
    handle_get_messages,
    handle_get_unread_count,
    handle_list_conversations,
    handle_mark_read,
    handle_post_message,
    handle_start_conversation,
)
from comms.schemas.conversation import (
    ConversationListResponse,
    ConversationStartedResponse,
    StartConversationRequest,
    UnreadCountResponse,
)
from comms.schemas.message import MessageCreateRequest, MessageResponse
from comms.services.conversation_service import ConversationService
from comms.services.dependencies import get_conversation_service

logger = logging.getLogger(__name__)


def build_participant_router(
    prefix: str,
    actor_dependency: Callable[..., Any],
    default_subject: str,
    tag: str,
) -> APIRouter:
    """Conversation routes for one participant role.

    Customers and drivers share the same operations; the dependency fixes the
    role the caller acts under and the default subject of new conversations.
    """
    api_router = APIRouter(prefix=prefix)
    router = BaseRouter(router=api_router, default_tags=[tag])

    @router.get("", response_model=ConversationListResponse)
    async def list_conversations(
        limit: int | None = Query(None),
        offset: int = Query(0),
        status: str | None = Query(None),
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        """Lists the caller's conversations, most recent activity first."""
        return await handle_list_conversations(
            actor, conv_service, limit=limit, offset=offset, status=status
        )

    @router.get("/unread-count", response_model=UnreadCountResponse)
    async def get_unread_count(
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        return await handle_get_unread_count(actor, conv_service)

    @router.post("/new", response_model=ConversationStartedResponse)
    async def start_conversation(
        request_data: StartConversationRequest,
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        """Opens a conversation with support and posts the first message."""
        return await handle_start_conversation(
            actor,
            subject=request_data.subject,
            body=request_data.body,
            default_subject=default_subject,
            conv_service=conv_service,
        )

    @router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
    async def get_messages(
        conversation_id: UUID,
        limit: int | None = Query(None),
        before: datetime | None = Query(None),
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        return await handle_get_messages(
            conversation_id, actor, conv_service, limit=limit, before=before
        )

    @router.post("/{conversation_id}/messages", response_model=MessageResponse)
    async def post_message(
        conversation_id: UUID,
        request_data: MessageCreateRequest,
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        return await handle_post_message(
            conversation_id, actor, request_data.body, conv_service
        )

    @router.put("/{conversation_id}/read")
    async def mark_read(
        conversation_id: UUID,
        actor: Actor = Depends(actor_dependency),
        conv_service: ConversationService = Depends(get_conversation_service),
    ):
        return await handle_mark_read(conversation_id, actor, conv_service)

    return api_router


customer_conversations_router = build_participant_router(
    "/api/conversations",
    current_customer,
    CUSTOMER_DEFAULT_SUBJECT,
    tag="conversations",
)

team_conversations_router = build_participant_router(
    "/api/team/conversations",
    current_driver,
    DRIVER_DEFAULT_SUBJECT,
    tag="team",
)
