# Tests for the customer conversation routes under /api/conversations
import uuid

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import FakeConnection, FakeEmailSender, auth_headers, create_test_user

from comms.models import Conversation, Message, User
from comms.realtime.keys import ParticipantKey
from comms.schemas.conversation import ConversationStatus
from comms.schemas.participant import ParticipantType

pytestmark = pytest.mark.asyncio


async def start_conversation(
    client: AsyncClient, user: User, body: str, subject: str | None = None
) -> dict:
    payload = {"body": body}
    if subject is not None:
        payload["subject"] = subject
    response = await client.post(
        "/api/conversations/new", json=payload, headers=await auth_headers(user)
    )
    assert response.status_code == 200, response.text
    return response.json()


async def message_count(session_maker: async_sessionmaker[AsyncSession]) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count(Message.id)))).scalar_one()


async def test_start_conversation_with_support(
    test_client: AsyncClient,
    test_app: FastAPI,
    customer_user: User,
    admin_user: User,
    email_sender: FakeEmailSender,
):
    admin_socket = FakeConnection()
    await test_app.state.registry.register(
        ParticipantKey(ParticipantType.ADMIN, admin_user.id), admin_socket
    )

    data = await start_conversation(
        test_client, customer_user, "  When is my next pickup?  "
    )

    assert data["conversation"]["subject"] == "Support Request"
    assert data["conversation"]["status"] == "open"
    assert data["conversation"]["created_by_type"] == "user"
    assert data["message"]["body"] == "When is my next pickup?"
    assert data["message"]["sender_name"] == "Casey Customer"
    assert data["message"]["sender_type"] == "user"

    new_events = admin_socket.events_named("conversation:new")
    assert len(new_events) == 1
    assert new_events[0]["data"]["customerName"] == "Casey Customer"
    assert new_events[0]["data"]["conversationId"] == uuid.UUID(
        data["conversation"]["id"]
    )
    assert len(admin_socket.events_named("message:new")) == 1

    await test_app.state.tasks.drain()
    assert [mail["to"] for mail in email_sender.sent] == [admin_user.email]
    assert email_sender.sent[0]["subject"] == "New message re: Support Request"


async def test_start_conversation_keeps_given_subject(
    test_client: AsyncClient, customer_user: User, admin_user: User
):
    data = await start_conversation(
        test_client, customer_user, "Bin was missed", subject="Missed pickup"
    )
    assert data["conversation"]["subject"] == "Missed pickup"


async def test_start_conversation_blank_body_rejected(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    customer_user: User,
    admin_user: User,
):
    response = await test_client.post(
        "/api/conversations/new",
        json={"subject": "Hello", "body": "   "},
        headers=await auth_headers(customer_user),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Message body is required"
    async with db_test_session_manager() as session:
        count = (await session.execute(select(func.count(Conversation.id)))).scalar_one()
    assert count == 0


async def test_start_conversation_without_admin_fails(
    test_client: AsyncClient, customer_user: User
):
    response = await test_client.post(
        "/api/conversations/new",
        json={"body": "Anyone there?"},
        headers=await auth_headers(customer_user),
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "No support staff available to receive messages"


async def test_routes_require_authentication(test_client: AsyncClient):
    response = await test_client.get("/api/conversations")
    assert response.status_code == 401

    response = await test_client.post(
        f"/api/conversations/{uuid.uuid4()}/messages", json={"body": "hi"}
    )
    assert response.status_code == 401


@pytest.mark.parametrize(
    "roles, expected",
    [
        (("driver",), 403),
        (("admin",), 403),
        ((), 200),
        (("customer", "driver"), 200),
    ],
)
async def test_customer_routes_follow_role_grants(
    roles,
    expected,
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    user = await create_test_user(db_test_session_manager, roles=roles)

    response = await test_client.get(
        "/api/conversations", headers=await auth_headers(user)
    )

    assert response.status_code == expected
    if expected == 403:
        assert response.json()["detail"] == "Customer access required"


async def test_post_message_as_participant(
    test_client: AsyncClient,
    test_app: FastAPI,
    customer_user: User,
    admin_user: User,
):
    started = await start_conversation(test_client, customer_user, "First")
    conversation_id = started["conversation"]["id"]

    customer_socket = FakeConnection()
    await test_app.state.registry.register(
        ParticipantKey(ParticipantType.USER, customer_user.id), customer_socket
    )

    response = await test_client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"body": "Second"},
        headers=await auth_headers(customer_user),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["body"] == "Second"
    assert data["sender_name"] == "Casey Customer"
    assert data["conversation_id"] == conversation_id

    # The sender's own other sessions hear about it too.
    pushed = customer_socket.events_named("message:new")
    assert len(pushed) == 1
    assert pushed[0]["data"]["senderName"] == "Casey Customer"
    assert pushed[0]["data"]["subject"] == "Support Request"


async def test_non_participant_is_forbidden(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    customer_user: User,
    admin_user: User,
):
    started = await start_conversation(test_client, customer_user, "Private")
    conversation_id = started["conversation"]["id"]
    outsider = await create_test_user(db_test_session_manager, first_name="Olly")
    headers = await auth_headers(outsider)

    read = await test_client.get(
        f"/api/conversations/{conversation_id}/messages", headers=headers
    )
    post = await test_client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"body": "let me in"},
        headers=headers,
    )
    mark = await test_client.put(
        f"/api/conversations/{conversation_id}/read", headers=headers
    )

    assert read.status_code == 403
    assert post.status_code == 403
    assert mark.status_code == 403
    assert post.json()["detail"] == "Not a participant"
    assert await message_count(db_test_session_manager) == 1


async def test_non_participant_is_forbidden_before_body_validation(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    customer_user: User,
    admin_user: User,
):
    started = await start_conversation(test_client, customer_user, "Private")
    outsider = await create_test_user(db_test_session_manager)

    response = await test_client.post(
        f"/api/conversations/{started['conversation']['id']}/messages",
        json={"body": "   "},
        headers=await auth_headers(outsider),
    )

    assert response.status_code == 403


@pytest.mark.parametrize("body", ["", "   ", "\n\t", None])
async def test_blank_message_rejected(
    body,
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    customer_user: User,
    admin_user: User,
):
    started = await start_conversation(test_client, customer_user, "First")

    response = await test_client.post(
        f"/api/conversations/{started['conversation']['id']}/messages",
        json={"body": body},
        headers=await auth_headers(customer_user),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Message body is required"
    assert await message_count(db_test_session_manager) == 1


async def test_malformed_body_is_a_bad_request(
    test_client: AsyncClient, customer_user: User, admin_user: User
):
    started = await start_conversation(test_client, customer_user, "First")

    response = await test_client.post(
        f"/api/conversations/{started['conversation']['id']}/messages",
        content="not json",
        headers={
            **(await auth_headers(customer_user)),
            "Content-Type": "application/json",
        },
    )

    assert response.status_code == 400


async def test_unread_count_and_mark_read(
    test_client: AsyncClient,
    customer_user: User,
    admin_user: User,
):
    started = await start_conversation(test_client, customer_user, "Question")
    conversation_id = started["conversation"]["id"]
    customer_headers = await auth_headers(customer_user)
    admin_headers = await auth_headers(admin_user)

    async def unread() -> int:
        response = await test_client.get(
            "/api/conversations/unread-count", headers=customer_headers
        )
        assert response.status_code == 200
        return response.json()["count"]

    # Own message does not count as unread.
    assert await unread() == 0

    reply = await test_client.post(
        f"/api/admin/conversations/{conversation_id}/messages",
        json={"body": "Answer"},
        headers=admin_headers,
    )
    assert reply.status_code == 200
    assert await unread() == 1

    for _ in range(2):
        response = await test_client.put(
            f"/api/conversations/{conversation_id}/read", headers=customer_headers
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert await unread() == 0

    await test_client.post(
        f"/api/admin/conversations/{conversation_id}/messages",
        json={"body": "Follow-up"},
        headers=admin_headers,
    )
    assert await unread() >= 1


async def test_unread_count_counts_conversations_not_messages(
    test_client: AsyncClient, customer_user: User, admin_user: User
):
    started = await start_conversation(test_client, customer_user, "Question")
    conversation_id = started["conversation"]["id"]
    admin_headers = await auth_headers(admin_user)
    for body in ("one", "two", "three"):
        await test_client.post(
            f"/api/admin/conversations/{conversation_id}/messages",
            json={"body": body},
            headers=admin_headers,
        )

    response = await test_client.get(
        "/api/conversations/unread-count", headers=await auth_headers(customer_user)
    )
    assert response.json() == {"count": 1}

    listing = await test_client.get(
        "/api/conversations", headers=await auth_headers(customer_user)
    )
    summary = listing.json()["conversations"][0]
    assert summary["unread_count"] == 3
    assert summary["message_count"] == 4
    assert summary["last_message"] == "three"
    assert summary["last_sender_type"] == "admin"


async def test_list_conversations_most_recent_first_and_hides_archived(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    customer_user: User,
    admin_user: User,
):
    older = await start_conversation(test_client, customer_user, "older")
    newer = await start_conversation(test_client, customer_user, "newer")
    archived = await start_conversation(test_client, customer_user, "archived")
    async with db_test_session_manager() as session:
        await session.execute(
            update(Conversation)
            .where(Conversation.id == uuid.UUID(archived["conversation"]["id"]))
            .values(status=ConversationStatus.ARCHIVED)
        )
        await session.commit()
    headers = await auth_headers(customer_user)

    response = await test_client.get("/api/conversations", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [c["id"] for c in data["conversations"]] == [
        newer["conversation"]["id"],
        older["conversation"]["id"],
    ]

    everything = await test_client.get(
        "/api/conversations", params={"status": "all"}, headers=headers
    )
    assert everything.json()["total"] == 3

    only_archived = await test_client.get(
        "/api/conversations", params={"status": "archived"}, headers=headers
    )
    assert [c["id"] for c in only_archived.json()["conversations"]] == [
        archived["conversation"]["id"]
    ]

    invalid = await test_client.get(
        "/api/conversations", params={"status": "deleted"}, headers=headers
    )
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid status"


async def test_get_messages_oldest_first_with_paging(
    test_client: AsyncClient, customer_user: User, admin_user: User
):
    started = await start_conversation(test_client, customer_user, "m0")
    conversation_id = started["conversation"]["id"]
    headers = await auth_headers(customer_user)
    for index in range(1, 5):
        await test_client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"body": f"m{index}"},
            headers=headers,
        )

    response = await test_client.get(
        f"/api/conversations/{conversation_id}/messages", headers=headers
    )
    messages = response.json()
    assert [m["body"] for m in messages] == ["m0", "m1", "m2", "m3", "m4"]

    latest = await test_client.get(
        f"/api/conversations/{conversation_id}/messages",
        params={"limit": 2},
        headers=headers,
    )
    assert [m["body"] for m in latest.json()] == ["m3", "m4"]

    earlier = await test_client.get(
        f"/api/conversations/{conversation_id}/messages",
        params={"limit": 2, "before": messages[3]["created_at"]},
        headers=headers,
    )
    assert [m["body"] for m in earlier.json()] == ["m1", "m2"]
