# Tests for the scheduled-send sweeper and its claim/cancel protocol
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import FakeEmailSender, FakeSmsSender, create_test_user

from comms.core.config import settings
from comms.models import CommunicationLog, User
from comms.repositories.communication_log_repository import (
    CommunicationLogRepository,
)
from comms.schemas.communication import Channel, DeliveryStatus
from comms.schemas.participant import ParticipantType
from comms.services.notification_service import NotificationDispatcher
from comms.services.scheduled_sender import ScheduledSendSweeper

pytestmark = pytest.mark.asyncio


@pytest.fixture
def dispatcher(
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    sms_sender: FakeSmsSender,
) -> NotificationDispatcher:
    return NotificationDispatcher(db_test_session_manager, email_sender, sms_sender)


@pytest.fixture
def sweeper(
    db_test_session_manager: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
) -> ScheduledSendSweeper:
    return ScheduledSendSweeper(db_test_session_manager, dispatcher, interval=0.01)


@pytest.fixture
async def recipient(db_test_session_manager: async_sessionmaker[AsyncSession]) -> User:
    return await create_test_user(
        db_test_session_manager, first_name="Sky", phone="+15550004444"
    )


async def schedule(
    dispatcher: NotificationDispatcher,
    user: User,
    when: datetime,
    channel: Channel = Channel.EMAIL,
    body: str = "Reminder for {{first_name}}",
) -> CommunicationLog:
    return await dispatcher.log_communication(
        user.id, ParticipantType.USER, channel, body=body, scheduled_for=when
    )


async def reload(
    session_maker: async_sessionmaker[AsyncSession], entry: CommunicationLog
) -> CommunicationLog:
    async with session_maker() as session:
        return await session.get(CommunicationLog, entry.id)


async def test_due_rows_are_sent_and_future_rows_wait(
    sweeper: ScheduledSendSweeper,
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    sms_sender: FakeSmsSender,
    recipient: User,
):
    now = datetime.now(timezone.utc)
    due_email = await schedule(dispatcher, recipient, now - timedelta(minutes=1))
    due_sms = await schedule(
        dispatcher, recipient, now - timedelta(seconds=1), channel=Channel.SMS
    )
    later = await schedule(dispatcher, recipient, now + timedelta(hours=1))

    result = await sweeper.run_once(now=now)

    assert (result.sent, result.failed, result.skipped) == (2, 0, 0)
    assert [mail["text"] for mail in email_sender.sent] == ["Reminder for Sky"]
    sms_text = f"{settings.APP_NAME}: Reminder for Sky"
    assert sms_sender.sent == [{"to": "+15550004444", "body": sms_text}]
    assert (await reload(db_test_session_manager, due_sms)).body == sms_text
    for entry in (due_email, due_sms):
        stored = await reload(db_test_session_manager, entry)
        assert stored.status == DeliveryStatus.SENT
        assert stored.sent_at is not None
    assert (await reload(db_test_session_manager, later)).status == (
        DeliveryStatus.SCHEDULED
    )

    # A second sweep finds nothing new to send.
    again = await sweeper.run_once(now=now)
    assert (again.sent, again.failed) == (0, 0)
    assert len(email_sender.sent) == 1


async def test_failed_delivery_moves_row_to_failed_without_retry(
    sweeper: ScheduledSendSweeper,
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    recipient: User,
):
    now = datetime.now(timezone.utc)
    entry = await schedule(dispatcher, recipient, now - timedelta(minutes=5))
    email_sender.fail = True

    result = await sweeper.run_once(now=now)

    assert result.failed == 1
    stored = await reload(db_test_session_manager, entry)
    assert stored.status == DeliveryStatus.FAILED
    assert stored.error_message == "Email provider error: HTTP 503"
    assert stored.sent_at is None

    email_sender.fail = False
    await sweeper.run_once(now=now + timedelta(hours=1))
    assert email_sender.sent == []
    assert (await reload(db_test_session_manager, entry)).status == (
        DeliveryStatus.FAILED
    )


async def test_cancelled_row_is_never_sent(
    sweeper: ScheduledSendSweeper,
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    recipient: User,
):
    now = datetime.now(timezone.utc)
    entry = await schedule(dispatcher, recipient, now - timedelta(minutes=1))
    async with db_test_session_manager() as session:
        assert await CommunicationLogRepository(session).cancel_scheduled(entry.id)
        await session.commit()

    result = await sweeper.run_once(now=now)

    assert result.sent == 0
    assert email_sender.sent == []
    assert (await reload(db_test_session_manager, entry)).status == (
        DeliveryStatus.CANCELLED
    )


async def test_row_cancelled_between_listing_and_claim_is_skipped(
    sweeper: ScheduledSendSweeper,
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    recipient: User,
    monkeypatch,
):
    now = datetime.now(timezone.utc)
    entry = await schedule(dispatcher, recipient, now - timedelta(minutes=1))
    original_list_due = CommunicationLogRepository.list_due

    async def list_then_cancel(self, when, limit):
        rows = await original_list_due(self, when, limit)
        async with db_test_session_manager() as other:
            await CommunicationLogRepository(other).cancel_scheduled(entry.id)
            await other.commit()
        return rows

    monkeypatch.setattr(CommunicationLogRepository, "list_due", list_then_cancel)

    result = await sweeper.run_once(now=now)

    assert (result.sent, result.skipped) == (0, 1)
    assert email_sender.sent == []
    assert (await reload(db_test_session_manager, entry)).status == (
        DeliveryStatus.CANCELLED
    )


async def test_cancel_after_claim_has_no_effect(
    sweeper: ScheduledSendSweeper,
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    recipient: User,
):
    now = datetime.now(timezone.utc)
    entry = await schedule(dispatcher, recipient, now - timedelta(minutes=1))
    await sweeper.run_once(now=now)

    async with db_test_session_manager() as session:
        assert not await CommunicationLogRepository(session).cancel_scheduled(
            entry.id
        )
        await session.commit()
    assert (await reload(db_test_session_manager, entry)).status == DeliveryStatus.SENT


async def test_rows_without_contact_are_never_scheduled(
    dispatcher: NotificationDispatcher,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    no_phone = await create_test_user(db_test_session_manager)

    entry = await schedule(
        dispatcher,
        no_phone,
        datetime.now(timezone.utc) + timedelta(hours=1),
        channel=Channel.SMS,
    )

    assert entry.status == DeliveryStatus.FAILED
    assert entry.error_message == "Recipient has no valid phone number"


async def test_batch_size_limits_one_sweep(
    db_test_session_manager: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
    email_sender: FakeEmailSender,
    recipient: User,
):
    sweeper = ScheduledSendSweeper(db_test_session_manager, dispatcher, batch_size=2)
    now = datetime.now(timezone.utc)
    for minutes in (3, 2, 1):
        await schedule(dispatcher, recipient, now - timedelta(minutes=minutes))

    first = await sweeper.run_once(now=now)
    second = await sweeper.run_once(now=now)

    assert (first.sent, second.sent) == (2, 1)
    assert len(email_sender.sent) == 3


class RowInspectingEmailSender(FakeEmailSender):
    """Looks at the log row, and tries to cancel it, while delivery is in flight."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__()
        self.session_maker = session_maker
        self.entry_id = None
        self.row_during_send: CommunicationLog | None = None
        self.cancelled_during_send: bool | None = None
        self.listed_during_send: list[CommunicationLog] | None = None

    async def send(self, to: str, subject: str, html: str, text: str) -> str | None:
        async with self.session_maker() as session:
            log_repo = CommunicationLogRepository(session)
            self.row_during_send = await session.get(CommunicationLog, self.entry_id)
            self.listed_during_send = list(await log_repo.list_scheduled())
            self.cancelled_during_send = await log_repo.cancel_scheduled(
                self.entry_id
            )
            await session.commit()
        return await super().send(to, subject, html, text)


@pytest.mark.parametrize("fail", [False, True])
async def test_row_is_not_reported_sent_while_delivery_is_in_flight(
    fail,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    sms_sender: FakeSmsSender,
    recipient: User,
):
    email_sender = RowInspectingEmailSender(db_test_session_manager)
    email_sender.fail = fail
    dispatcher = NotificationDispatcher(
        db_test_session_manager, email_sender, sms_sender
    )
    sweeper = ScheduledSendSweeper(db_test_session_manager, dispatcher)
    now = datetime.now(timezone.utc)
    entry = await schedule(dispatcher, recipient, now - timedelta(minutes=1))
    email_sender.entry_id = entry.id

    result = await sweeper.run_once(now=now)

    in_flight = email_sender.row_during_send
    assert in_flight.status == DeliveryStatus.SCHEDULED
    assert in_flight.claimed_at is not None
    assert in_flight.sent_at is None
    # A claimed row can no longer be cancelled or listed as cancellable.
    assert email_sender.cancelled_during_send is False
    assert email_sender.listed_during_send == []

    stored = await reload(db_test_session_manager, entry)
    if fail:
        assert result.failed == 1
        assert stored.status == DeliveryStatus.FAILED
        assert stored.sent_at is None
    else:
        assert result.sent == 1
        assert stored.status == DeliveryStatus.SENT
        assert stored.sent_at is not None
