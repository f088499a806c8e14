import asyncio
import logging
from typing import Any, Iterable

from .keys import ParticipantKey
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Best-effort push of events to every live connection behind a set of keys."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def broadcast(
        self, keys: Iterable[ParticipantKey], event: str, payload: Any
    ) -> int:
        """Writes ``{event, data}`` to each open connection, concurrently.

        Connections that are no longer open are skipped. A failed write is
        logged and leaves the connection for the heartbeat to reap; nothing is
        queued or retried. Returns the number of successful
        writes.
        """
        keys = list(keys)
        connections = await self.registry.connections_for_many(keys)
        targets = [connection for connection in connections if connection.is_open]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(connection.send_event(event, payload) for connection in targets),
            return_exceptions=True,
        )
        delivered = 0
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to push '{event}' to {connection}: {result}")
                connection.is_alive = False
            else:
                delivered += 1
        logger.debug(
            f"Broadcast '{event}' to {delivered}/{len(targets)} connections "
            f"for {[str(key) for key in keys]}"
        )
        return delivered
