import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from comms.api.common import BaseRouter
from comms.auth_config import Actor, current_admin
from comms.logic.conversation_processing import (
    handle_create_conversation,
    handle_get_conversation,
    handle_get_messages,
    handle_list_all_conversations,
    handle_mark_read,
    handle_post_message,
    handle_update_status,
)
from comms.schemas.conversation import (
    AdminConversationCreateRequest,
    ConversationDetailResponse,
    ConversationListResponse,
    StatusUpdateRequest,
)
from comms.schemas.message import MessageCreateRequest, MessageResponse
from comms.services.conversation_service import ConversationService
from comms.services.dependencies import get_conversation_service

logger = logging.getLogger(__name__)
admin_conversations_router_instance = APIRouter(prefix="/api/admin/conversations")
router = BaseRouter(
    router=admin_conversations_router_instance, default_tags=["admin"]
)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    limit: int | None = Query(None),
    offset: int = Query(0),
    status: str | None = Query(None),
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    """Every conversation in the system, with participants attached."""
    return await handle_list_all_conversations(
        conv_service, limit=limit, offset=offset, status=status
    )


@router.post("", response_model=ConversationDetailResponse)
async def create_conversation(
    request_data: AdminConversationCreateRequest,
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_create_conversation(
        admin,
        subject=request_data.subject,
        conversation_type=request_data.type,
        participants=request_data.participant_ids,
        conv_service=conv_service,
    )


@router.get("/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: UUID,
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_get_conversation(conversation_id, conv_service)


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def get_messages(
    conversation_id: UUID,
    limit: int | None = Query(None),
    before: datetime | None = Query(None),
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_get_messages(
        conversation_id,
        admin,
        conv_service,
        limit=limit,
        before=before,
        moderated=True,
    )


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
async def post_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    """Admins may post into any conversation, participant or not."""
    return await handle_post_message(
        conversation_id, admin, request_data.body, conv_service, moderated=True
    )


@router.put("/{conversation_id}/read")
async def mark_read(
    conversation_id: UUID,
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_mark_read(conversation_id, admin, conv_service, moderated=True)


@router.put("/{conversation_id}/status", response_model=ConversationDetailResponse)
async def update_status(
    conversation_id: UUID,
    request_data: StatusUpdateRequest,
    admin: Actor = Depends(current_admin),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    logger.info(
        f"Admin {admin.id} setting {conversation_id} status to {request_data.status}"
    )
    return await handle_update_status(
        conversation_id, request_data.status, conv_service
    )
