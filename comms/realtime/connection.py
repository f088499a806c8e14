import asyncio
import logging
from typing import Any, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketState

from comms.schemas.realtime import RealtimeEvent

logger = logging.getLogger(__name__)


class Connection(Protocol):
    is_alive: bool

    @property
    def is_open(self) -> bool: ...

    async def send_event(self, event: str, data: Any = None) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class SocketConnection:
    """A live websocket, written to by one coroutine at a time."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.is_alive = True
        self._send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_event(self, event: str, data: Any = None) -> None:
        frame = RealtimeEvent(event=event, data=jsonable_encoder(data))
        async with self._send_lock:
            await self.websocket.send_json(frame.model_dump(exclude_none=True))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        async with self._send_lock:
            await self.websocket.close(code=code, reason=reason)

    def __repr__(self) -> str:
        return f"SocketConnection(client={self.websocket.client})"
