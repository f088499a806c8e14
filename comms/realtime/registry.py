import asyncio
import logging
from typing import Iterable

from .connection import Connection
from .keys import ParticipantKey

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live connections indexed by participant key.

    Owned by the application and shared by the socket endpoint, the broadcaster
    and the heartbeat. Every access goes through one lock.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._by_key: dict[ParticipantKey, set[Connection]] = {}
        self._keys_by_connection: dict[Connection, set[ParticipantKey]] = {}

    async def register(self, key: ParticipantKey, connection: Connection) -> None:
        async with self._lock:
            self._by_key.setdefault(key, set()).add(connection)
            self._keys_by_connection.setdefault(connection, set()).add(key)
        logger.debug(f"Registered connection under {key}")

    async def unregister(self, key: ParticipantKey, connection: Connection) -> None:
        async with self._lock:
            self._discard(key, connection)

    async def unregister_all(self, connection: Connection) -> set[ParticipantKey]:
        """Drops the connection from every key it was registered under."""
        async with self._lock:
            keys = set(self._keys_by_connection.get(connection, ()))
            for key in keys:
                self._discard(key, connection)
        if keys:
            logger.debug(f"Unregistered connection from {sorted(map(str, keys))}")
        return keys

    def _discard(self, key: ParticipantKey, connection: Connection) -> None:
        connections = self._by_key.get(key)
        if connections is not None:
            connections.discard(connection)
            if not connections:
                del self._by_key[key]

        keys = self._keys_by_connection.get(connection)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._keys_by_connection[connection]

    async def connections_for(self, key: ParticipantKey) -> frozenset[Connection]:
        async with self._lock:
            return frozenset(self._by_key.get(key, ()))

    async def connections_for_many(
        self, keys: Iterable[ParticipantKey]
    ) -> frozenset[Connection]:
        async with self._lock:
            found: set[Connection] = set()
            for key in keys:
                found.update(self._by_key.get(key, ()))
            return frozenset(found)

    async def all_connections(self) -> frozenset[Connection]:
        async with self._lock:
            return frozenset(self._keys_by_connection)

    async def keys(self) -> frozenset[ParticipantKey]:
        async with self._lock:
            return frozenset(self._by_key)
