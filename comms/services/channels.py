import asyncio
import logging
from typing import Protocol

import httpx
import resend
from resend.exceptions import ResendError

from comms.core.config import settings

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """An outbound channel provider could not accept a message."""


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str) -> str | None: ...


class SmsSender(Protocol):
    async def send(self, to: str, body: str) -> str | None: ...


class ResendEmailSender:
    """Sends email through Resend."""

    def __init__(
        self,
        api_key: str | None = None,
        from_address: str | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS

    async def send(self, to: str, subject: str, html: str, text: str) -> str | None:
        if not self.api_key:
            raise DeliveryError("Email channel is not configured")

        resend.api_key = self.api_key
        params = {
            "from": f"{settings.APP_NAME} <{self.from_address}>",
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            # The Resend client is blocking.
            response = await asyncio.to_thread(resend.Emails.send, params)
        except ResendError as e:
            logger.warning(f"Resend rejected message to {to}: {e}")
            raise DeliveryError(f"Email provider error: {e}") from e

        message_id = response.get("id") if response else None
        logger.info(f"Email sent to {to} (id={message_id})")
        return message_id


class TwilioSmsSender:
    """Sends SMS through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        timeout: float | None = None,
    ):
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number or settings.TWILIO_FROM_NUMBER
        self.timeout = timeout or settings.CHANNEL_TIMEOUT_SECONDS

    async def send(self, to: str, body: str) -> str | None:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise DeliveryError("SMS channel is not configured")

        url = (
            f"https://api.twilio.com/2010-04-01/Accounts/"
            f"{self.account_sid}/Messages.json"
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to, "From": self.from_number, "Body": body},
                )
        except httpx.HTTPError as e:
            raise DeliveryError(f"SMS provider unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                f"Twilio rejected SMS to {to}: {response.status_code} {response.text}"
            )
            raise DeliveryError(f"SMS provider error: HTTP {response.status_code}")

        sid = response.json().get("sid")
        logger.info(f"SMS sent to {to} (sid={sid})")
        return sid
