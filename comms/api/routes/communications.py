import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from comms.api.common import BaseRouter
from comms.auth_config import Actor, current_admin
from comms.logic.communication_processing import (
    handle_cancel_scheduled,
    handle_compose,
    handle_get_activity_entry,
    handle_list_activity,
    handle_list_scheduled,
)
from comms.schemas.communication import (
    ActivityLogPage,
    CommunicationLogResponse,
    ComposeRequest,
    ComposeResult,
)
from comms.services.communication_service import CommunicationService
from comms.services.dependencies import get_communication_service

logger = logging.getLogger(__name__)
communications_router_instance = APIRouter(prefix="/api/admin")
router = BaseRouter(
    router=communications_router_instance, default_tags=["admin", "communications"]
)


@router.post(
    "/compose", response_model=ComposeResult, response_model_exclude_none=True
)
async def compose(
    request_data: ComposeRequest,
    admin: Actor = Depends(current_admin),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    """Sends now, or schedules, one message per recipient per channel."""
    return await handle_compose(request_data, admin.id, comm_service)


@router.get("/activity-log", response_model=ActivityLogPage)
async def list_activity(
    page: int = Query(1),
    limit: int = Query(50),
    channel: str | None = Query(None),
    status: str | None = Query(None),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    search: str | None = Query(None),
    admin: Actor = Depends(current_admin),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    return await handle_list_activity(
        comm_service,
        page=page,
        limit=limit,
        channel=channel,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )


@router.get("/activity-log/{entry_id}", response_model=CommunicationLogResponse)
async def get_activity_entry(
    entry_id: UUID,
    admin: Actor = Depends(current_admin),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    return await handle_get_activity_entry(entry_id, comm_service)


@router.get("/scheduled", response_model=list[CommunicationLogResponse])
async def list_scheduled(
    admin: Actor = Depends(current_admin),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    return await handle_list_scheduled(comm_service)


@router.delete("/scheduled/{entry_id}")
async def cancel_scheduled(
    entry_id: UUID,
    admin: Actor = Depends(current_admin),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    return await handle_cancel_scheduled(entry_id, comm_service)
