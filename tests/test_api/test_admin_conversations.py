# Tests for the back-office conversation routes under /api/admin/conversations
import uuid

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import FakeConnection, auth_headers, create_test_user

from comms.models import User
from comms.realtime.keys import ParticipantKey
from comms.schemas.participant import ParticipantType

pytestmark = pytest.mark.asyncio


async def create_conversation(
    client: AsyncClient, admin: User, participants: list[dict], **extra
) -> dict:
    response = await client.post(
        "/api/admin/conversations",
        json={"participantIds": participants, **extra},
        headers=await auth_headers(admin),
    )
    assert response.status_code == 200, response.text
    return response.json()


async def test_admin_routes_require_admin(
    test_client: AsyncClient, customer_user: User, driver_user: User
):
    for user in (customer_user, driver_user):
        response = await test_client.get(
            "/api/admin/conversations", headers=await auth_headers(user)
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"


async def test_superuser_counts_as_admin(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    root = await create_test_user(
        db_test_session_manager, roles=(), is_superuser=True
    )
    response = await test_client.get(
        "/api/admin/conversations", headers=await auth_headers(root)
    )
    assert response.status_code == 200


async def test_create_direct_conversation(
    test_client: AsyncClient,
    test_app: FastAPI,
    admin_user: User,
    customer_user: User,
):
    customer_socket = FakeConnection()
    await test_app.state.registry.register(
        ParticipantKey(ParticipantType.USER, customer_user.id), customer_socket
    )

    data = await create_conversation(
        test_client,
        admin_user,
        [str(customer_user.id)],
        subject="Your account",
    )

    assert data["type"] == "direct"
    assert data["subject"] == "Your account"
    assert data["created_by_type"] == "admin"
    participants = {
        (p["participant_type"], p["participant_name"]) for p in data["participants"]
    }
    assert participants == {("admin", "Support Admin"), ("user", "Casey Customer")}
    emails = {p["participant_email"] for p in data["participants"]}
    assert emails == {admin_user.email, customer_user.email}

    pushed = customer_socket.events_named("conversation:new")
    assert len(pushed) == 1
    assert pushed[0]["data"]["adminName"] == "Support Admin"


async def test_create_group_conversation_dedupes_participants(
    test_client: AsyncClient,
    admin_user: User,
    customer_user: User,
    driver_user: User,
):
    data = await create_conversation(
        test_client,
        admin_user,
        [
            {"id": str(customer_user.id)},
            {"id": str(customer_user.id), "type": "user"},
            {"id": str(driver_user.id), "type": "driver"},
            {"id": str(admin_user.id), "type": "admin"},
        ],
    )

    assert data["type"] == "group"
    assert len(data["participants"]) == 3
    driver = next(p for p in data["participants"] if p["participant_type"] == "driver")
    assert driver["participant_name"] == "Test Driver"


async def test_create_conversation_validation(
    test_client: AsyncClient, admin_user: User
):
    headers = await auth_headers(admin_user)

    empty = await test_client.post(
        "/api/admin/conversations", json={"participantIds": []}, headers=headers
    )
    assert empty.status_code == 400
    assert empty.json()["detail"] == "At least one participant is required"

    unknown = await test_client.post(
        "/api/admin/conversations",
        json={"participantIds": [str(uuid.uuid4())]},
        headers=headers,
    )
    assert unknown.status_code == 404


async def test_get_conversation_detail(
    test_client: AsyncClient, admin_user: User, customer_user: User
):
    created = await create_conversation(
        test_client, admin_user, [str(customer_user.id)]
    )
    headers = await auth_headers(admin_user)

    response = await test_client.get(
        f"/api/admin/conversations/{created['id']}", headers=headers
    )
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    assert len(response.json()["participants"]) == 2

    missing = await test_client.get(
        f"/api/admin/conversations/{uuid.uuid4()}", headers=headers
    )
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Conversation not found"


async def test_admin_can_moderate_conversations_they_are_not_in(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    admin_user: User,
    customer_user: User,
):
    other_admin = await create_test_user(
        db_test_session_manager, first_name="Other", last_name="Admin", roles=("admin",)
    )
    created = await create_conversation(
        test_client, other_admin, [str(customer_user.id)]
    )
    headers = await auth_headers(admin_user)

    post = await test_client.post(
        f"/api/admin/conversations/{created['id']}/messages",
        json={"body": "Stepping in"},
        headers=headers,
    )
    assert post.status_code == 200
    assert post.json()["sender_name"] == "Support Admin"
    assert post.json()["sender_type"] == "admin"

    messages = await test_client.get(
        f"/api/admin/conversations/{created['id']}/messages", headers=headers
    )
    assert [m["body"] for m in messages.json()] == ["Stepping in"]

    missing = await test_client.post(
        f"/api/admin/conversations/{uuid.uuid4()}/messages",
        json={"body": "hello?"},
        headers=headers,
    )
    assert missing.status_code == 404


async def test_update_status(
    test_client: AsyncClient, admin_user: User, customer_user: User
):
    created = await create_conversation(
        test_client, admin_user, [str(customer_user.id)]
    )
    headers = await auth_headers(admin_user)
    url = f"/api/admin/conversations/{created['id']}/status"

    for status in ("closed", "open", "archived", "open"):
        response = await test_client.put(url, json={"status": status}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == status

    for bad in ({"status": "deleted"}, {"status": ""}, {}):
        response = await test_client.put(url, json=bad, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status"

    missing = await test_client.put(
        f"/api/admin/conversations/{uuid.uuid4()}/status",
        json={"status": "closed"},
        headers=headers,
    )
    assert missing.status_code == 404


async def test_list_all_conversations_with_participants(
    test_client: AsyncClient,
    admin_user: User,
    customer_user: User,
    driver_user: User,
):
    first = await create_conversation(test_client, admin_user, [str(customer_user.id)])
    second = await create_conversation(
        test_client, admin_user, [{"id": str(driver_user.id), "type": "driver"}]
    )
    headers = await auth_headers(admin_user)
    await test_client.put(
        f"/api/admin/conversations/{first['id']}/status",
        json={"status": "archived"},
        headers=headers,
    )

    response = await test_client.get("/api/admin/conversations", headers=headers)
    data = response.json()
    assert data["total"] == 1
    assert data["conversations"][0]["id"] == second["id"]
    assert len(data["conversations"][0]["participants"]) == 2

    everything = await test_client.get(
        "/api/admin/conversations",
        params={"status": "all", "limit": 1, "offset": 1},
        headers=headers,
    )
    assert everything.json()["total"] == 2
    assert len(everything.json()["conversations"]) == 1
