from uuid import UUID

from comms.schemas.template import TemplateWriteRequest
from comms.services.template_service import TemplateService


async def handle_list_templates(template_service: TemplateService):
    return await template_service.list_templates()


async def handle_get_template(template_id: UUID, template_service: TemplateService):
    return await template_service.get_template(template_id)


async def handle_create_template(
    request: TemplateWriteRequest,
    created_by: UUID,
    template_service: TemplateService,
):
    return await template_service.create_template(
        name=request.name,
        channel=request.channel,
        subject=request.subject,
        body=request.body,
        variables=request.variables,
        created_by=created_by,
    )


async def handle_replace_template(
    template_id: UUID,
    request: TemplateWriteRequest,
    template_service: TemplateService,
):
    return await template_service.replace_template(
        template_id,
        name=request.name,
        channel=request.channel,
        subject=request.subject,
        body=request.body,
        variables=request.variables,
    )


async def handle_delete_template(
    template_id: UUID, template_service: TemplateService
) -> dict[str, bool]:
    await template_service.delete_template(template_id)
    return {"success": True}
