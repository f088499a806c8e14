# Tests for message storage, sender-name resolution and read state
import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import create_driver, create_test_user

from comms.models import User
from comms.repositories.conversation_repository import ConversationRepository
from comms.repositories.message_repository import MessageRepository
from comms.repositories.user_repository import display_name
from comms.schemas.participant import ParticipantType

pytestmark = pytest.mark.asyncio


async def new_conversation(
    session: AsyncSession, owner: User, *members: tuple[uuid.UUID, ParticipantType]
):
    conversation = await ConversationRepository(session).create_conversation(
        subject="Test",
        conversation_type="direct",
        created_by_id=owner.id,
        created_by_type=ParticipantType.ADMIN,
        participants=[(owner.id, ParticipantType.ADMIN), *members],
    )
    await session.commit()
    return conversation


@pytest.mark.parametrize(
    "sender_type, expected",
    [
        (ParticipantType.USER, "Customer"),
        (ParticipantType.DRIVER, "Driver"),
        (ParticipantType.ADMIN, "Admin"),
    ],
)
async def test_sender_name_falls_back_to_role_label(
    sender_type,
    expected,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    admin = await create_test_user(db_test_session_manager, roles=("admin",))
    nameless = await create_test_user(
        db_test_session_manager, first_name=None, last_name=None
    )
    async with db_test_session_manager() as session:
        conversation = await new_conversation(session, admin)
        messages = MessageRepository(session)
        for sender_id in (nameless.id, uuid.uuid4()):
            await messages.create_message(conversation.id, sender_id, sender_type, "hi")
        await session.commit()

        rows = await messages.list_messages(conversation.id)

    assert [row["sender_name"] for row in rows] == [expected, expected]


async def test_sender_name_per_role(
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    admin = await create_test_user(
        db_test_session_manager, first_name="Ada", last_name="Min", roles=("admin",)
    )
    driver = await create_driver(
        db_test_session_manager,
        first_name="Account",
        last_name="Name",
        driver_name="Route 9 Driver",
    )
    no_profile = await create_test_user(
        db_test_session_manager, first_name="Solo", last_name=None, roles=("driver",)
    )
    async with db_test_session_manager() as session:
        conversation = await new_conversation(session, admin)
        messages = MessageRepository(session)
        await messages.create_message(
            conversation.id, driver.id, ParticipantType.DRIVER, "as driver"
        )
        await messages.create_message(
            conversation.id, driver.id, ParticipantType.USER, "as customer"
        )
        await messages.create_message(
            conversation.id, no_profile.id, ParticipantType.DRIVER, "no profile"
        )
        await messages.create_message(
            conversation.id, admin.id, ParticipantType.ADMIN, "as admin"
        )
        await session.commit()

        rows = await messages.list_messages(conversation.id)

    assert [(row["body"], row["sender_name"]) for row in rows] == [
        ("as driver", "Route 9 Driver"),
        ("as customer", "Account Name"),
        ("no profile", "Solo"),
        ("as admin", "Ada Min"),
    ]


async def test_mark_read_is_idempotent_and_scoped_to_the_identity(
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    admin = await create_test_user(db_test_session_manager, roles=("admin",))
    person = await create_test_user(db_test_session_manager, roles=("customer", "driver"))
    async with db_test_session_manager() as session:
        conversation = await new_conversation(
            session,
            admin,
            (person.id, ParticipantType.USER),
            (person.id, ParticipantType.DRIVER),
        )
        conversations = ConversationRepository(session)
        await MessageRepository(session).create_message(
            conversation.id, admin.id, ParticipantType.ADMIN, "ping"
        )
        await session.commit()

        assert await conversations.get_unread_count(person.id, ParticipantType.USER) == 1
        assert (
            await conversations.get_unread_count(person.id, ParticipantType.DRIVER) == 1
        )

        for _ in range(2):
            await conversations.mark_read(
                conversation.id, person.id, ParticipantType.USER
            )
            await session.commit()
            assert (
                await conversations.get_unread_count(person.id, ParticipantType.USER)
                == 0
            )

        assert (
            await conversations.get_unread_count(person.id, ParticipantType.DRIVER) == 1
        )


async def test_create_message_bumps_conversation_activity(
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    admin = await create_test_user(db_test_session_manager, roles=("admin",))
    async with db_test_session_manager() as session:
        first = await new_conversation(session, admin)
        second = await new_conversation(session, admin)
        await MessageRepository(session).create_message(
            first.id, admin.id, ParticipantType.ADMIN, "bump"
        )
        await session.commit()

        rows, total = await ConversationRepository(session).list_for_participant(
            admin.id, ParticipantType.ADMIN
        )

    assert total == 2
    assert [row["id"] for row in rows] == [first.id, second.id]
    assert rows[0]["last_message"] == "bump"
    assert rows[1]["message_count"] == 0
    assert rows[1]["last_message"] is None


async def test_display_name_without_fallback_can_be_none():
    assert display_name(ParticipantType.USER, None, fallback=False) is None
    assert display_name(ParticipantType.DRIVER, None) == "Driver"
