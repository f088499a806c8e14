import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi_users.db import SQLAlchemyUserDatabase
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms.auth_config import UserManager, get_strategy, resolve_roles, transport
from comms.models import User
from comms.realtime.connection import SocketConnection
from comms.realtime.keys import RoleSet
from comms.schemas.realtime import InboundFrame

logger = logging.getLogger(__name__)
realtime_router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4001


async def authenticate_socket(
    websocket: WebSocket, session_factory: async_sessionmaker[AsyncSession]
) -> tuple[User, RoleSet] | None:
    """Resolves the session cookie to an active user and their role set."""
    token = websocket.cookies.get(transport.cookie_name)
    if not token:
        return None
    async with session_factory() as session:
        user_manager = UserManager(SQLAlchemyUserDatabase(session, User))
        user = await get_strategy().read_token(token, user_manager)
        if user is None or not user.is_active:
            return None
        roles = await resolve_roles(session, user)
    return user, roles


@realtime_router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """Live event stream. Registers the socket under every role key of the
    signed-in identity until it disconnects or misses a heartbeat."""
    await websocket.accept()
    state = websocket.app.state

    authenticated = await authenticate_socket(websocket, state.session_factory)
    if authenticated is None:
        logger.info("Rejecting unauthenticated realtime connection")
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Unauthorized")
        return
    user, roles = authenticated

    connection = SocketConnection(websocket)
    for key in roles.keys_for(user.id):
        await state.registry.register(key, connection)
    logger.info(f"User {user.id} connected as {[role.value for role in roles.roles]}")

    try:
        await connection.send_event(
            "connected", {"userId": user.id, "userType": roles.primary.value}
        )
        while True:
            raw = await websocket.receive_text()
            connection.is_alive = True
            try:
                frame = InboundFrame.model_validate_json(raw)
            except ValidationError:
                logger.debug(f"Ignoring malformed frame from {user.id}")
                continue
            if frame.event == "ping":
                await connection.send_event("pong")
    except WebSocketDisconnect as e:
        logger.info(f"User {user.id} disconnected (code={e.code})")
    finally:
        await state.registry.unregister_all(connection)
