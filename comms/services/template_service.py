import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from comms.models import CommunicationTemplate
from comms.repositories.template_repository import TemplateRepository
from comms.schemas.communication import Channel

from .exceptions import DatabaseError, InvalidRequestError, TemplateNotFoundError

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(self, template_repository: TemplateRepository):
        self.template_repo = template_repository
        self.session = template_repository.session

    async def list_templates(self) -> Sequence[CommunicationTemplate]:
        return await self.template_repo.list_templates()

    async def get_template(self, template_id: UUID) -> CommunicationTemplate:
        template = await self.template_repo.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError()
        return template

    @staticmethod
    def _clean(name: str | None, body: str | None) -> tuple[str, str]:
        name = (name or "").strip()
        body = (body or "").strip()
        if not name or not body:
            raise InvalidRequestError("Name and body are required")
        return name, body

    async def create_template(
        self,
        name: str | None,
        channel: Channel,
        subject: str | None,
        body: str | None,
        variables: list[str],
        created_by: UUID | None,
    ) -> CommunicationTemplate:
        name, body = self._clean(name, body)
        try:
            template = await self.template_repo.create_template(
                name=name,
                channel=channel,
                subject=subject,
                body=body,
                variables=variables,
                created_by=created_by,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error creating template: {e}", exc_info=True)
            raise DatabaseError("Failed to create template due to a database error.")
        logger.info(f"Template {template.id} '{template.name}' created")
        return template

    async def replace_template(
        self,
        template_id: UUID,
        name: str | None,
        channel: Channel,
        subject: str | None,
        body: str | None,
        variables: list[str],
    ) -> CommunicationTemplate:
        template = await self.get_template(template_id)
        name, body = self._clean(name, body)
        try:
            template = await self.template_repo.replace_template(
                template,
                name=name,
                channel=channel,
                subject=subject,
                body=body,
                variables=variables,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error updating template: {e}", exc_info=True)
            raise DatabaseError("Failed to update template due to a database error.")
        await self.session.refresh(template)
        return template

    async def delete_template(self, template_id: UUID) -> None:
        template = await self.get_template(template_id)
        try:
            await self.template_repo.delete_template(template)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error deleting template: {e}", exc_info=True)
            raise DatabaseError("Failed to delete template due to a database error.")
        logger.info(f"Template {template_id} deleted")
