import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Iterable, Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms.core.config import settings
from comms.core.templating import render_email_html
from comms.models import CommunicationLog
from comms.models.base import utcnow
from comms.repositories.communication_log_repository import (
    CommunicationLogRepository,
)
from comms.repositories.user_repository import UserRepository, display_name
from comms.schemas.communication import Channel, DeliveryStatus
from comms.schemas.participant import ParticipantType

from .channels import DeliveryError, EmailSender, SmsSender
from .rendering import render_template

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200
MIN_PHONE_LENGTH = 7


@dataclass(frozen=True)
class Recipient:
    id: UUID
    type: ParticipantType
    name: str | None
    email: str | None
    phone: str | None
    wants_message_emails: bool = True

    def contact_for(self, channel: Channel) -> str | None:
        if channel == Channel.EMAIL:
            return self.email or None
        if self.phone and len(self.phone.strip()) >= MIN_PHONE_LENGTH:
            return self.phone.strip()
        return None

    def variables(self) -> dict[str, str]:
        first_name, _, last_name = (self.name or "").partition(" ")
        return {
            "first_name": first_name,
            "last_name": last_name,
            "name": self.name or "",
            "email": self.email or "",
            "phone": self.phone or "",
        }


def sms_text(body: str) -> str:
    """The SMS body as it goes out, branded with the app name."""
    return f"{settings.APP_NAME}: {body}"


def snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


class NotificationDispatcher:
    """Delivers email/SMS notifications and records every attempt.

    Each call works in its own database session so it can run detached from
    the request that triggered it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_sender: EmailSender,
        sms_sender: SmsSender,
        concurrency: int = settings.DISPATCH_CONCURRENCY,
    ):
        self.session_factory = session_factory
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self._limit = asyncio.Semaphore(concurrency)

    async def resolve_recipient(
        self, recipient_id: UUID, recipient_type: ParticipantType
    ) -> Recipient | None:
        async with self.session_factory() as session:
            users = UserRepository(session)
            user = await users.get_user_by_id(recipient_id)
            if user is None:
                return None
            profile = None
            if recipient_type == ParticipantType.DRIVER:
                profile = await users.get_driver_profile(recipient_id)

            phone = user.phone
            wants_message_emails = bool(user.message_email_notifications)
            if profile is not None:
                phone = profile.phone or phone
                wants_message_emails = bool(profile.message_email_notifications)

            return Recipient(
                id=recipient_id,
                type=recipient_type,
                name=display_name(recipient_type, user, profile, fallback=False),
                email=user.email,
                phone=phone,
                wants_message_emails=wants_message_emails,
            )

    async def send_and_log(
        self,
        recipient_id: UUID,
        recipient_type: ParticipantType,
        channel: Channel,
        body: str,
        subject: str | None = None,
        sent_by: UUID | None = None,
        template_id: UUID | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> CommunicationLog:
        """Immediate send. Always writes exactly one log row, ``sent`` or ``failed``.

        Channel failures are recorded on the row rather than raised.
        """
        recipient = await self.resolve_recipient(recipient_id, recipient_type)
        subject, body = self._render(channel, subject, body, recipient, variables)
        return await self._attempt(
            recipient_id,
            recipient_type,
            recipient,
            channel,
            subject,
            body,
            sent_by=sent_by,
            template_id=template_id,
        )

    async def log_communication(
        self,
        recipient_id: UUID,
        recipient_type: ParticipantType,
        channel: Channel,
        body: str,
        scheduled_for: datetime,
        subject: str | None = None,
        sent_by: UUID | None = None,
        template_id: UUID | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> CommunicationLog:
        """Scheduled send: renders and records a ``scheduled`` row, no delivery.

        A recipient with no address for the channel gets a ``failed`` row instead.
        """
        recipient = await self.resolve_recipient(recipient_id, recipient_type)
        subject, body = self._render(channel, subject, body, recipient, variables)
        contact = recipient.contact_for(channel) if recipient else None

        async with self.session_factory() as session:
            log_repo = CommunicationLogRepository(session)
            if contact is None:
                entry = await log_repo.create_entry(
                    recipient_id=recipient_id,
                    recipient_type=recipient_type,
                    recipient_name=recipient.name if recipient else None,
                    channel=channel,
                    subject=subject,
                    body=body,
                    template_id=template_id,
                    status=DeliveryStatus.FAILED,
                    scheduled_for=scheduled_for,
                    sent_by=sent_by,
                    error_message=self._missing_contact_reason(recipient, channel),
                )
            else:
                entry = await log_repo.create_entry(
                    recipient_id=recipient_id,
                    recipient_type=recipient_type,
                    recipient_name=recipient.name,
                    recipient_contact=contact,
                    channel=channel,
                    subject=subject,
                    body=body,
                    template_id=template_id,
                    status=DeliveryStatus.SCHEDULED,
                    scheduled_for=scheduled_for,
                    sent_by=sent_by,
                )
            await session.commit()
        logger.info(
            f"Recorded {entry.status.value} {channel.value} entry {entry.id} "
            f"for {recipient_type.value}:{recipient_id}"
        )
        return entry

    async def send_message_notification(
        self,
        recipient_id: UUID,
        recipient_type: ParticipantType,
        sender_name: str,
        message_body: str,
        conversation_subject: str | None = None,
    ) -> CommunicationLog | None:
        """Emails a participant about a new conversation message.

        Recipients who turned message emails off are skipped without a log row.
        """
        recipient = await self.resolve_recipient(recipient_id, recipient_type)
        if recipient is not None and not recipient.wants_message_emails:
            logger.debug(
                f"{recipient_type.value}:{recipient_id} opted out of message emails"
            )
            return None

        subject = (
            f"New message re: {conversation_subject}"
            if conversation_subject
            else "New message"
        )
        excerpt = snippet(message_body)
        text = f"{sender_name} sent you a new message:\n\n{excerpt}"
        html = render_email_html(
            "email/message_notification.html",
            title=subject,
            sender_name=sender_name,
            snippet=excerpt,
            conversation_subject=conversation_subject,
        )
        return await self._attempt(
            recipient_id,
            recipient_type,
            recipient,
            Channel.EMAIL,
            subject,
            text,
            html=html,
        )

    async def deliver(
        self,
        channel: Channel,
        contact: str,
        subject: str | None,
        body: str,
        html: str | None = None,
    ) -> None:
        """Pushes one message through the channel sender. Raises DeliveryError.

        ``body`` is sent as stored; SMS bodies already carry their prefix.
        """
        async with self._limit:
            if channel == Channel.EMAIL:
                subject = subject or f"Message from {settings.APP_NAME}"
                if html is None:
                    html = render_email_html("email/message.html", title=subject, body=body)
                await self.email_sender.send(contact, subject, html, body)
            else:
                await self.sms_sender.send(contact, body)

    async def gather_isolated(self, calls: Iterable[Awaitable[Any]]) -> list[Any]:
        """Runs independent dispatch calls concurrently.

        A failing call does not affect the others; its exception is logged and
        returned in its slot.
        """
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    f"Notification dispatch failed: {result}",
                    exc_info=(type(result), result, result.__traceback__),
                )
        return results

    def _render(
        self,
        channel: Channel,
        subject: str | None,
        body: str,
        recipient: Recipient | None,
        variables: Mapping[str, Any] | None,
    ) -> tuple[str | None, str]:
        context: dict[str, Any] = recipient.variables() if recipient else {}
        context.update(variables or {})
        rendered_subject = render_template(subject, context) if subject else subject
        rendered_body = render_template(body, context)
        if channel == Channel.SMS:
            rendered_body = sms_text(rendered_body)
        return rendered_subject, rendered_body

    def _missing_contact_reason(
        self, recipient: Recipient | None, channel: Channel
    ) -> str:
        if recipient is None:
            return "Recipient not found"
        if channel == Channel.EMAIL:
            return "Recipient has no email address"
        return "Recipient has no valid phone number"

    async def _attempt(
        self,
        recipient_id: UUID,
        recipient_type: ParticipantType,
        recipient: Recipient | None,
        channel: Channel,
        subject: str | None,
        body: str,
        html: str | None = None,
        sent_by: UUID | None = None,
        template_id: UUID | None = None,
    ) -> CommunicationLog:
        contact = recipient.contact_for(channel) if recipient else None
        status = DeliveryStatus.FAILED
        sent_at = None
        error_message = None

        if contact is None:
            error_message = self._missing_contact_reason(recipient, channel)
        else:
            try:
                await self.deliver(channel, contact, subject, body, html=html)
                status = DeliveryStatus.SENT
                sent_at = utcnow()
            except DeliveryError as e:
                error_message = str(e)
            except Exception as e:
                logger.error(
                    f"Unexpected {channel.value} delivery error for {contact}: {e}",
                    exc_info=True,
                )
                error_message = f"Unexpected delivery error: {e}"

        if error_message:
            logger.warning(
                f"{channel.value} to {recipient_type.value}:{recipient_id} failed: "
                f"{error_message}"
            )

        async with self.session_factory() as session:
            entry = await CommunicationLogRepository(session).create_entry(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                recipient_name=recipient.name if recipient else None,
                recipient_contact=contact,
                channel=channel,
                subject=subject,
                body=body,
                template_id=template_id,
                status=status,
                sent_at=sent_at,
                sent_by=sent_by,
                error_message=error_message,
            )
            await session.commit()
        return entry
