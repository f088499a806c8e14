import asyncio
import logging

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class Heartbeat:
    """Closes connections that failed the previous liveness probe.

    The wire-level ping/pong is answered by the client's websocket stack and
    enforced by the ASGI server (see ``comms.main.serve``); a connection whose
    pong never arrives has its transport dropped. Each round here checks the
    transport of every registered connection, and one that was found dead (or
    failed a write) in the previous round is unregistered and closed.
    """

    def __init__(self, registry: ConnectionRegistry, interval: float = 30.0):
        self.registry = registry
        self.interval = interval

    async def probe(self) -> int:
        """Runs one probe round and returns how many connections were reaped."""
        reaped = 0
        for connection in await self.registry.all_connections():
            if not connection.is_alive:
                await self.registry.unregister_all(connection)
                reaped += 1
                try:
                    await connection.close(code=1001, reason="Heartbeat timeout")
                except Exception as e:
                    logger.debug(f"Closing stale connection {connection} failed: {e}")
                continue

            if not connection.is_open:
                logger.debug(f"Transport of {connection} is gone")
                connection.is_alive = False
        if reaped:
            logger.info(f"Heartbeat reaped {reaped} stale connection(s)")
        return reaped

    async def run(self) -> None:
        logger.info(f"Heartbeat started (interval={self.interval}s)")
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.probe()
            except Exception as e:
                logger.error(f"Heartbeat round failed: {e}", exc_info=True)
