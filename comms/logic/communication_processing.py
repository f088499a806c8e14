import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from comms.core.config import settings
from comms.models.base import as_utc, utcnow
from comms.schemas.communication import (
    COMPOSE_CHANNELS,
    Channel,
    ComposeRequest,
    DeliveryStatus,
)
from comms.services.communication_service import CommunicationService
from comms.services.exceptions import InvalidRequestError

logger = logging.getLogger(__name__)


def parse_channel(value: str | None) -> Channel | None:
    if value is None or not value.strip():
        return None
    try:
        return Channel(value.strip().lower())
    except ValueError:
        raise InvalidRequestError("Invalid channel")


def parse_delivery_status(value: str | None) -> DeliveryStatus | None:
    if value is None or not value.strip():
        return None
    try:
        return DeliveryStatus(value.strip().lower())
    except ValueError:
        raise InvalidRequestError("Invalid status")


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


async def handle_compose(
    request: ComposeRequest,
    sender_id: UUID,
    comm_service: CommunicationService,
) -> dict[str, Any]:
    """Validates a compose request, in order, before anything is written."""
    if not request.recipient_ids:
        raise InvalidRequestError("At least one recipient is required")
    if request.template_id is None and not (request.body or "").strip():
        raise InvalidRequestError("Message body is required")

    channels = COMPOSE_CHANNELS.get((request.channel or "").strip().lower())
    if channels is None:
        raise InvalidRequestError("Invalid channel")

    scheduled_for = None
    if request.scheduled_for is not None:
        scheduled_for = as_utc(request.scheduled_for)
        if scheduled_for <= utcnow():
            raise InvalidRequestError("Scheduled time must be in the future")

    recipients = []
    for ref in request.recipient_ids:
        if (ref.id, ref.type) not in recipients:
            recipients.append((ref.id, ref.type))

    return await comm_service.compose(
        sender_id=sender_id,
        recipients=recipients,
        channels=channels,
        subject=request.subject,
        body=request.body,
        scheduled_for=scheduled_for,
        template_id=request.template_id,
        variables=request.variables,
    )


async def handle_list_activity(
    comm_service: CommunicationService,
    page: int = 1,
    limit: int = 50,
    channel: str | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), settings.MAX_PAGE_SIZE)
    return await comm_service.list_activity(
        page=page,
        limit=limit,
        channel=parse_channel(channel),
        status=parse_delivery_status(status),
        start=_day_start(start_date) if start_date else None,
        # endDate covers the whole day
        end=_day_start(end_date) + timedelta(days=1) if end_date else None,
        search=(search or "").strip() or None,
    )


async def handle_get_activity_entry(
    entry_id: UUID, comm_service: CommunicationService
):
    return await comm_service.get_activity_entry(entry_id)


async def handle_list_scheduled(comm_service: CommunicationService):
    return await comm_service.list_scheduled()


async def handle_cancel_scheduled(
    entry_id: UUID, comm_service: CommunicationService
) -> dict[str, bool]:
    await comm_service.cancel_scheduled(entry_id)
    return {"success": True}
