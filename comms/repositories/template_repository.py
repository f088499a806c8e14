from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comms.models import CommunicationTemplate
from comms.schemas.communication import Channel

from .base import BaseRepository


class TemplateRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_templates(self) -> Sequence[CommunicationTemplate]:
        stmt = select(CommunicationTemplate).order_by(
            CommunicationTemplate.name, CommunicationTemplate.created_at
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_template(self, template_id: UUID) -> CommunicationTemplate | None:
        return await self.session.get(CommunicationTemplate, template_id)

    async def create_template(
        self,
        name: str,
        channel: Channel,
        subject: str | None,
        body: str,
        variables: list[str],
        created_by: UUID | None,
    ) -> CommunicationTemplate:
        template = CommunicationTemplate(
            name=name,
            channel=channel,
            subject=subject,
            body=body,
            variables=list(variables),
            created_by=created_by,
        )
        self.session.add(template)
        await self.session.flush()
        return template

    async def replace_template(
        self,
        template: CommunicationTemplate,
        name: str,
        channel: Channel,
        subject: str | None,
        body: str,
        variables: list[str],
    ) -> CommunicationTemplate:
        template.name = name
        template.channel = channel
        template.subject = subject
        template.body = body
        template.variables = list(variables)
        self.session.add(template)
        await self.session.flush()
        return template

    async def delete_template(self, template: CommunicationTemplate) -> None:
        await self.session.delete(template)
        await self.session.flush()
