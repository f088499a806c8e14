import logging
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from comms.models import CommunicationLog, User
from comms.repositories.communication_log_repository import (
    CommunicationLogRepository,
)
from comms.repositories.template_repository import TemplateRepository
from comms.schemas.communication import (
    Channel,
    CommunicationLogResponse,
    DeliveryStatus,
)
from comms.schemas.participant import ParticipantType

from .exceptions import (
    DatabaseError,
    InvalidRequestError,
    LogEntryNotFoundError,
    TemplateNotFoundError,
)
from .notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


def _log_response(
    entry: CommunicationLog, sender: User | None
) -> CommunicationLogResponse:
    response = CommunicationLogResponse.model_validate(entry)
    if sender is not None:
        response.sent_by_name = sender.full_name or sender.email
    return response


class CommunicationService:
    """Admin compose, activity log and scheduled-send management."""

    def __init__(
        self,
        log_repository: CommunicationLogRepository,
        template_repository: TemplateRepository,
        dispatcher: NotificationDispatcher,
    ):
        self.log_repo = log_repository
        self.template_repo = template_repository
        self.dispatcher = dispatcher
        self.session = log_repository.session

    async def compose(
        self,
        sender_id: UUID,
        recipients: list[tuple[UUID, ParticipantType]],
        channels: list[Channel],
        subject: str | None,
        body: str | None,
        scheduled_for: datetime | None = None,
        template_id: UUID | None = None,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Sends or schedules one message per recipient per channel.

        Every attempt is logged; the result only counts outcomes.
        """
        if template_id is not None:
            template = await self.template_repo.get_template(template_id)
            if template is None:
                raise TemplateNotFoundError()
            body = body if body and body.strip() else template.body
            subject = subject or template.subject

        body = (body or "").strip()
        if not body:
            raise InvalidRequestError("Message body is required")

        common = dict(
            body=body,
            subject=subject,
            sent_by=sender_id,
            template_id=template_id,
            variables=variables,
        )
        if scheduled_for is not None:
            calls = [
                self.dispatcher.log_communication(
                    recipient_id,
                    recipient_type,
                    channel,
                    scheduled_for=scheduled_for,
                    **common,
                )
                for recipient_id, recipient_type in recipients
                for channel in channels
            ]
        else:
            calls = [
                self.dispatcher.send_and_log(
                    recipient_id, recipient_type, channel, **common
                )
                for recipient_id, recipient_type in recipients
                for channel in channels
            ]

        results = await self.dispatcher.gather_isolated(calls)
        statuses = [
            result.status for result in results if isinstance(result, CommunicationLog)
        ]

        if scheduled_for is not None:
            scheduled = statuses.count(DeliveryStatus.SCHEDULED)
            logger.info(
                f"Scheduled {scheduled}/{len(calls)} message(s) for {scheduled_for}"
            )
            return {"success": True, "scheduled": scheduled}

        sent = statuses.count(DeliveryStatus.SENT)
        logger.info(f"Compose delivered {sent}/{len(calls)} message(s)")
        return {"success": True, "sent": sent, "failed": len(calls) - sent}

    async def list_activity(
        self,
        page: int,
        limit: int,
        channel: Channel | None = None,
        status: DeliveryStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        try:
            rows, total = await self.log_repo.list_entries(
                limit=limit,
                offset=(page - 1) * limit,
                channel=channel,
                status=status,
                start=start,
                end=end,
                search=search,
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error reading activity log: {e}", exc_info=True)
            raise DatabaseError("Failed to read the activity log.")
        return {
            "entries": [_log_response(entry, sender) for entry, sender in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def get_activity_entry(self, entry_id: UUID) -> CommunicationLogResponse:
        row = await self.log_repo.get_entry(entry_id)
        if row is None:
            raise LogEntryNotFoundError("Entry not found")
        entry, sender = row
        return _log_response(entry, sender)

    async def list_scheduled(self) -> Sequence[CommunicationLog]:
        return await self.log_repo.list_scheduled()

    async def cancel_scheduled(self, entry_id: UUID) -> None:
        """Moves a row from ``scheduled`` to ``cancelled`` in one conditional
        update; any other state, or a missing row, is reported as not found."""
        try:
            cancelled = await self.log_repo.cancel_scheduled(entry_id)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error cancelling {entry_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to cancel the scheduled message.")
        if not cancelled:
            raise LogEntryNotFoundError("Scheduled message not found or already sent")
        logger.info(f"Scheduled entry {entry_id} cancelled")
