"""
In-memory index of the open chat connections of each group.
"""

import asyncio
import json
from typing import Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from studydino.core.uuid import UUID


class SocketRegistry:
    """
    Maps a group to the set of WebSockets currently open on its chat. A group
    only has an entry while at least one connection is registered.

    Delivery is best-effort and at-most-once: a broadcast is offered to the
    connections registered when it starts; closed or failing peers are
    skipped.
    """

    def __init__(self, log: FilteringBoundLogger | None = None):
        self._sockets: dict[UUID, set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self.log = log or get_logger()

    async def register(self, group_id: UUID, connection: WebSocket) -> None:
        async with self._lock:
            self._sockets.setdefault(group_id, set()).add(connection)
            count = len(self._sockets[group_id])

        await self.log.adebug("registry.registered", group_id=group_id, connections=count)

    async def unregister(self, group_id: UUID, connection: WebSocket) -> None:
        async with self._lock:
            sockets = self._sockets.get(group_id)

            if sockets is None:
                return

            sockets.discard(connection)

            if not sockets:
                del self._sockets[group_id]

        await self.log.adebug("registry.unregistered", group_id=group_id)

    async def connections(self, group_id: UUID) -> list[WebSocket]:
        """
        A snapshot of the group's registered connections.
        """
        async with self._lock:
            return list(self._sockets.get(group_id, ()))

    async def connection_count(self, group_id: UUID) -> int:
        async with self._lock:
            return len(self._sockets.get(group_id, ()))

    async def group_ids(self) -> set[UUID]:
        async with self._lock:
            return set(self._sockets)

    async def _send(self, connection: WebSocket, message: str) -> bool:
        if (
            connection.client_state != WebSocketState.CONNECTED
            or connection.application_state != WebSocketState.CONNECTED
        ):
            return False

        try:
            await connection.send_text(message)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            # The peer went away between the state check and the send.
            await self.log.adebug("registry.send_failed", error=str(e))
            return False

        return True

    async def broadcast(self, group_id: UUID, payload: Any) -> int:
        """
        Serialize `payload` once and send it to every open connection of the
        group. Returns the number of connections it was delivered to.
        """
        sockets = await self.connections(group_id)

        if not sockets:
            return 0

        message = payload if isinstance(payload, str) else json.dumps(payload)

        results = await asyncio.gather(*(self._send(x, message) for x in sockets))
        delivered = sum(results)

        await self.log.adebug(
            "registry.broadcast",
            group_id=group_id,
            connections=len(sockets),
            delivered=delivered,
        )

        return delivered
