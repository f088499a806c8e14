from uuid import UUID

from fastapi import APIRouter, Depends, status

from comms.api.common import BaseRouter
from comms.auth_config import Actor, current_admin
from comms.logic.template_processing import (
    handle_create_template,
    handle_delete_template,
    handle_get_template,
    handle_list_templates,
    handle_replace_template,
)
from comms.schemas.template import TemplateResponse, TemplateWriteRequest
from comms.services.dependencies import get_template_service
from comms.services.template_service import TemplateService

templates_router_instance = APIRouter(prefix="/api/admin/templates")
router = BaseRouter(router=templates_router_instance, default_tags=["admin", "templates"])


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    admin: Actor = Depends(current_admin),
    template_service: TemplateService = Depends(get_template_service),
):
    return await handle_list_templates(template_service)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    request_data: TemplateWriteRequest,
    admin: Actor = Depends(current_admin),
    template_service: TemplateService = Depends(get_template_service),
):
    return await handle_create_template(request_data, admin.id, template_service)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: UUID,
    admin: Actor = Depends(current_admin),
    template_service: TemplateService = Depends(get_template_service),
):
    return await handle_get_template(template_id, template_service)


@router.put("/{template_id}", response_model=TemplateResponse)
async def replace_template(
    template_id: UUID,
    request_data: TemplateWriteRequest,
    admin: Actor = Depends(current_admin),
    template_service: TemplateService = Depends(get_template_service),
):
    """Full replace; omitted optional fields are cleared."""
    return await handle_replace_template(template_id, request_data, template_service)


@router.delete("/{template_id}")
async def delete_template(
    template_id: UUID,
    admin: Actor = Depends(current_admin),
    template_service: TemplateService = Depends(get_template_service),
):
    return await handle_delete_template(template_id, template_service)
